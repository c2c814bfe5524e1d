"""
Unit tests for the audit trail.

Test Coverage:
- Derived risk levels and compliance flags
- Best-effort recording
- Review, security alerts and compliance reports
"""

from datetime import timedelta

from onboardflow.app.models.domain.workflow import utcnow
from onboardflow.app.services.audit_service import derive_compliance_flags, derive_risk_level, field_changes


class TestDerivedFields:
    """Test suite for derived audit fields."""

    def test_risk_level(self):
        """Test that deletions are Medium risk and other actions Low."""
        assert derive_risk_level("DELETE") == "Medium"
        assert derive_risk_level("UPDATE") == "Low"

    def test_compliance_flags(self):
        """Test per-entity compliance flags."""
        assert derive_compliance_flags("Client") == ["HIPAA", "GDPR"]
        assert derive_compliance_flags("Task") == []

    def test_field_changes_skip_unchanged(self):
        """Test that unchanged fields are left out of the change list."""
        changes = field_changes({"a": 1, "b": 2}, {"a": 1, "b": 3, "c": None})

        assert changes == [{"field": "b", "oldValue": 2, "newValue": 3}]


class TestRecording:
    """Test suite for writing audit entries."""

    async def test_record_fills_derived_fields(self, audit_service):
        """Test that a recorded entry carries id, risk, flags and review state."""
        entry = await audit_service.record({
            "action": "DELETE", "entityType": "Client", "entityId": "c1", "userId": "u1"
        })

        assert entry["logId"].startswith("AUDIT-DELETE")
        assert entry["riskLevel"] == "Medium"
        assert entry["complianceFlags"] == ["HIPAA", "GDPR"]
        assert entry["isReviewed"] is False

    async def test_record_never_raises(self, audit_service):
        """Test that an unwritable entry yields None instead of an error."""
        assert await audit_service.record({"action": "UPDATE"}) is None

    async def test_record_many_empty(self, audit_service):
        """Test that an empty batch writes nothing."""
        assert await audit_service.record_many([]) == []


class TestReporting:
    """Test suite for review, alerts and reports."""

    async def test_review(self, audit_service):
        """Test that reviewing stamps reviewer and notes."""
        entry = await audit_service.record({"action": "UPDATE", "entityType": "Task", "entityId": "t1"})

        reviewed = await audit_service.mark_reviewed(entry["id"], "auditor", notes="fine")

        assert reviewed["isReviewed"] is True
        assert reviewed["reviewedBy"] == "auditor"
        assert reviewed["reviewNotes"] == "fine"

    async def test_security_alerts(self, audit_service):
        """Test that only unreviewed High and Critical entries are alerts."""
        high = await audit_service.record({"action": "DELETE", "entityType": "User", "riskLevel": "High"})
        reviewed = await audit_service.record({"action": "DELETE", "entityType": "User", "riskLevel": "Critical"})
        await audit_service.record({"action": "DELETE", "entityType": "User"})
        await audit_service.mark_reviewed(reviewed["id"], "auditor")

        alerts = await audit_service.get_security_alerts()

        assert [a["id"] for a in alerts] == [high["id"]]

    async def test_compliance_report(self, audit_service):
        """Test totals and distributions in the compliance report."""
        await audit_service.record({"action": "CREATE", "entityType": "Task", "userId": "u1"})
        await audit_service.record({"action": "UPDATE", "entityType": "Task", "userId": "u1"})
        await audit_service.record({"action": "DELETE", "entityType": "Task", "userId": "u2", "riskLevel": "High"})

        report = await audit_service.get_compliance_report()

        assert report["totalEntries"] == 3
        assert report["riskDistribution"] == {"Low": 2, "High": 1}
        assert report["actionDistribution"] == {"CREATE": 1, "UPDATE": 1, "DELETE": 1}
        assert report["userActivity"][0] == {"userId": "u1", "count": 2}
        assert report["unreviewedHighRisk"] == 1

    async def test_list_by_date_range(self, audit_service):
        """Test that a future start date excludes current entries."""
        await audit_service.record({"action": "CREATE", "entityType": "Task"})

        past = await audit_service.list_logs(start_date=utcnow() - timedelta(days=1))
        future = await audit_service.list_logs(start_date=utcnow() + timedelta(days=1))

        assert past.total_count == 1
        assert future.total_count == 0
