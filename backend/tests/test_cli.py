"""
CLI command tests.

Verifies:
- inventory reconcile exits 0 when cached stock matches the ledger
- inventory reconcile exits 1 and lists the part when it does not
- finance metrics prints JSON
"""

import json

from repairdesk.models import Part


class TestInventoryCommands:

    def test_reconcile_passes(self, app, db_session, part):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["inventory", "reconcile"])
        assert result.exit_code == 0
        assert result.output.startswith("PASS")

    def test_reconcile_reports_drift(self, app, db_session, part):
        db_session.query(Part).filter_by(id=part.id).update({"quantity": 2})
        db_session.commit()

        runner = app.test_cli_runner()
        result = runner.invoke(args=["inventory", "reconcile"])

        assert result.exit_code == 1
        assert "FAIL" in result.output
        assert "SCR-X1" in result.output
        assert "drift=-3" in result.output

    def test_low_stock_lists_parts(self, app, db_session, part):
        db_session.query(Part).filter_by(id=part.id).update({"reorder_level": 10})
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["inventory", "low-stock"])
        assert result.exit_code == 0
        assert "SCR-X1" in result.output


class TestFinanceCommands:

    def test_metrics_json(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["finance", "metrics", "--period", "daily", "--compare"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["period"] == "daily"
        assert data["revenue_cents"] == 0
        assert "revenue_change" in data
