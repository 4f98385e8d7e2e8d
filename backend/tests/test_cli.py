# Overview: Pytest coverage for the operator CLI command groups.

from decimal import Decimal

from unistore.models import Organization, TransactionLine


class TestOrgCommands:
    def test_create_list_archive(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["orgs", "create", "--name", "Glow Salon", "--code", "GLOW"])
        assert result.exit_code == 0
        assert "PASS Created organization: Glow Salon" in result.output

        org = db_session.query(Organization).filter_by(code="GLOW").one()
        assert org.smart_code == "CORE.PLATFORM.ORG.TENANT.v1"
        assert org.created_by == "cli"

        result = runner.invoke(args=["orgs", "list"])
        assert "Glow Salon" in result.output

        result = runner.invoke(args=["orgs", "archive", "--org-id", org.id])
        assert result.exit_code == 0
        db_session.expire_all()
        assert db_session.get(Organization, org.id).status == "archived"

    def test_duplicate_code_fails(self, app, db_session, org_a):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["orgs", "create", "--name", "Copy", "--code", "ACME"])
        assert result.exit_code == 1
        assert "FAIL Conflict" in result.output

    def test_list_empty(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["orgs", "list"])
        assert "No organizations found." in result.output


class TestSmartCodeCommands:
    def test_check_valid(self, app):
        result = app.test_cli_runner().invoke(args=["smartcode", "check", "CORE.SALON.SVC.ITEM.v2"])
        assert result.exit_code == 0
        assert "segments: SALON.SVC.ITEM" in result.output
        assert "version:  2" in result.output

    def test_check_invalid(self, app):
        result = app.test_cli_runner().invoke(args=["smartcode", "check", "CORE.salon.SVC.v1"])
        assert result.exit_code == 1
        assert "FAIL Invalid smart code" in result.output


class TestLedgerCommands:
    def test_validate(self, app, db_session, org_a, emit, pos_ticket):
        txn = emit(org_a, pos_ticket())["transaction"]

        result = app.test_cli_runner().invoke(args=["ledger", "validate", "--org", org_a.id, "--txn", txn["id"]])
        assert result.exit_code == 0
        assert f"PASS Transaction {txn['id']} is consistent" in result.output

    def test_validate_unknown(self, app, db_session, org_a):
        result = app.test_cli_runner().invoke(args=["ledger", "validate", "--org", org_a.id, "--txn", "missing"])
        assert result.exit_code == 1
        assert "FAIL NotFound" in result.output

    def test_validate_reports_discrepancies(self, app, db_session, org_a, emit, pos_ticket):
        txn = emit(org_a, pos_ticket())["transaction"]
        line = db_session.query(TransactionLine).filter_by(transaction_id=txn["id"], line_number=3).one()
        line.line_amount = Decimal("-50")
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["ledger", "validate", "--org", org_a.id, "--txn", txn["id"]])
        assert result.exit_code == 1
        assert "Unbalanced" in result.output
