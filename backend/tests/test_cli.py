# Overview: Pytest coverage for the calibration and cash CLI groups.

from fuelpos.models import CalibrationPoint, CashRegister
from fuelpos.services import cash_register_service


class TestCalibrationCommands:
    def test_validate_valid_table(self, app, vessel):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["calibration", "validate", "--vessel-id", str(vessel.id)])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_import_and_export(self, app, db_session, vessel, tmp_path):
        csv_path = tmp_path / "tank.csv"
        csv_path.write_text("height,volume\n0,0\n100,3000\n200,6500\n", encoding="utf-8")

        runner = app.test_cli_runner()
        result = runner.invoke(args=["calibration", "import", "--vessel-id", str(vessel.id), "--file", str(csv_path)])
        assert result.exit_code == 0, result.output
        assert db_session.query(CalibrationPoint).filter_by(vessel_id=vessel.id).count() == 3

        result = runner.invoke(args=["calibration", "export", "--vessel-id", str(vessel.id)])
        assert result.exit_code == 0
        assert result.output.splitlines()[0] == "height,volume"

    def test_unknown_vessel_fails(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["calibration", "validate", "--vessel-id", "999"])
        assert result.exit_code != 0


class TestCashCommands:
    def test_balance_and_drift(self, app, db_session, cash_register, make_shift, point_of_sale):
        closure = make_shift(0)
        cash_register_service.record_cash_movement(closure.id, "IN", 2500, "Cash sales", is_sales_cash=True)

        runner = app.test_cli_runner()
        result = runner.invoke(args=["cash", "balance", "--pos-id", str(point_of_sale.id), "--shift-id", str(closure.shift_id)])
        assert "Closing: 12500" in result.output

        result = runner.invoke(args=["cash", "drift", "--pos-id", str(point_of_sale.id)])
        assert result.exit_code == 0

    def test_rebuild_fixes_drift(self, app, db_session, cash_register, point_of_sale):
        cash_register.current_balance_cents = 1
        db_session.commit()

        runner = app.test_cli_runner()
        result = runner.invoke(args=["cash", "drift", "--pos-id", str(point_of_sale.id)])
        assert result.exit_code == 1

        result = runner.invoke(args=["cash", "rebuild", "--pos-id", str(point_of_sale.id)])
        assert result.exit_code == 0

        db_session.expire_all()
        register = db_session.query(CashRegister).filter_by(point_of_sale_id=point_of_sale.id).one()
        assert register.current_balance_cents == 10000
