import pytest

from missing_matters.services.state_machine import (
    DEFAULT_FLOW,
    FIELD_FLOWS,
    REQUIRED_REPORT_FIELDS,
    ConversationFlow,
    coerce_flow,
    is_reset_command,
)


class TestResetCommand:
    @pytest.mark.parametrize(
        "message",
        ["reset", "Please RESTART", "can we start over?", "clear", "begin again", "new chat please"],
    )
    def test_matches(self, message):
        assert is_reset_command(message) is True

    @pytest.mark.parametrize("message", ["", None, "I lost my wallet", "resetting my watch", "nuclear"])
    def test_does_not_match(self, message):
        assert is_reset_command(message) is False


class TestFlows:
    def test_default_flow(self):
        assert DEFAULT_FLOW == ConversationFlow.INITIAL_GREETING

    def test_all_flows_defined(self):
        expected = {
            "initial_greeting",
            "lost_item_report",
            "collecting_contact_info",
            "company_info",
            "verification",
            "help",
        }
        assert {flow.value for flow in ConversationFlow} == expected

    def test_fields_requested_in_order(self):
        assert REQUIRED_REPORT_FIELDS == ("description", "name", "phone", "location")
        assert set(FIELD_FLOWS) == set(REQUIRED_REPORT_FIELDS)

    def test_coerce_unknown_flow(self):
        assert coerce_flow("GREETING") == ConversationFlow.INITIAL_GREETING
        assert coerce_flow(None) == ConversationFlow.INITIAL_GREETING
        assert coerce_flow("help") == ConversationFlow.HELP
