import pytest

from missing_matters.schemas.session import LostItemReport
from missing_matters.services.intent_service import ClassifiedIntent, Intent, IntentSource
from missing_matters.services.session_reducer import TRANSITIONS, get_transition, normalize_phone, reduce_session
from missing_matters.services.state_machine import ConversationFlow


def _intent(intent: Intent) -> ClassifiedIntent:
    return ClassifiedIntent(intent, 0.9, IntentSource.RULE)


class TestNormalizePhone:
    def test_ten_digits_get_default_country_code(self):
        assert normalize_phone("1234567890") == "+11234567890"

    def test_plus_prefixed_keeps_country_code(self):
        assert normalize_phone("+44 20 7946 0958") == "+442079460958"

    def test_already_normalized_unchanged(self):
        assert normalize_phone("+11234567890") == "+11234567890"

    def test_formatting_stripped(self):
        assert normalize_phone(" (123) 456-7890 ") == "+11234567890"

    def test_other_lengths_get_plus_only(self):
        assert normalize_phone("441234567890") == "+441234567890"


class TestReportLostItem:
    def test_creates_report_and_enters_flow(self, session):
        reduce_session(session, _intent(Intent.REPORT_LOST_ITEM), "I lost my backpack")

        assert session.current_flow == ConversationFlow.LOST_ITEM_REPORT
        assert session.lost_item_report is not None
        assert session.lost_item_report.description is None

    def test_keeps_open_report(self, session):
        session.lost_item_report = LostItemReport(description="keys")

        reduce_session(session, _intent(Intent.REPORT_LOST_ITEM), "I lost my keys")

        assert session.lost_item_report.description == "keys"

    def test_resumes_at_next_missing_field(self, session):
        session.current_flow = ConversationFlow.COLLECTING_CONTACT_INFO
        session.lost_item_report = LostItemReport(description="backpack", name="Sam Smith")

        reduce_session(session, _intent(Intent.REPORT_LOST_ITEM), "I lost it near the station")

        assert session.current_flow == ConversationFlow.COLLECTING_CONTACT_INFO
        assert session.lost_item_report.description == "backpack"

    def test_starts_new_report_after_submission(self, session):
        session.lost_item_report = LostItemReport(description="keys", reference_number="REF-ABC")

        reduce_session(session, _intent(Intent.REPORT_LOST_ITEM), "I lost my wallet too")

        assert session.lost_item_report.reference_number is None
        assert session.lost_item_report.description is None


class TestTransitions:
    def test_greeting_resets_flow_without_report(self, session):
        session.current_flow = ConversationFlow.COMPANY_INFO
        reduce_session(session, _intent(Intent.GREETING), "hi")
        assert session.current_flow == ConversationFlow.INITIAL_GREETING

    def test_greeting_keeps_flow_with_active_report(self, session):
        session.current_flow = ConversationFlow.COLLECTING_CONTACT_INFO
        session.lost_item_report = LostItemReport(description="keys")
        reduce_session(session, _intent(Intent.GREETING), "hi")
        assert session.current_flow == ConversationFlow.COLLECTING_CONTACT_INFO

    def test_greeting_keeps_verification(self, session):
        session.current_flow = ConversationFlow.VERIFICATION
        reduce_session(session, _intent(Intent.GREETING), "hello")
        assert session.current_flow == ConversationFlow.VERIFICATION

    def test_description_advances_flow(self, session):
        session.current_flow = ConversationFlow.LOST_ITEM_REPORT
        session.lost_item_report = LostItemReport()

        reduce_session(session, _intent(Intent.PROVIDE_ITEM_DESCRIPTION), " black Jansport ")

        assert session.lost_item_report.description == "black Jansport"
        assert session.current_flow == ConversationFlow.COLLECTING_CONTACT_INFO

    def test_description_ignored_outside_report_flow(self, session):
        session.current_flow = ConversationFlow.COMPANY_INFO
        reduce_session(session, _intent(Intent.PROVIDE_ITEM_DESCRIPTION), "black Jansport")
        assert session.lost_item_report is None
        assert session.current_flow == ConversationFlow.COMPANY_INFO

    def test_location(self, session):
        session.lost_item_report = LostItemReport()
        reduce_session(session, _intent(Intent.PROVIDE_LOCATION), "Central Station")
        assert session.lost_item_report.location == "Central Station"

    def test_location_without_report_is_noop(self, session):
        reduce_session(session, _intent(Intent.PROVIDE_LOCATION), "Central Station")
        assert session.lost_item_report is None

    def test_name_sets_display_name_and_report(self, session):
        session.lost_item_report = LostItemReport()
        reduce_session(session, _intent(Intent.PROVIDE_NAME), "Jane Doe")
        assert session.display_name == "Jane Doe"
        assert session.lost_item_report.name == "Jane Doe"

    def test_name_without_report(self, session):
        reduce_session(session, _intent(Intent.PROVIDE_NAME), "Jane Doe")
        assert session.display_name == "Jane Doe"

    def test_phone_normalized_into_session_and_report(self, session):
        session.lost_item_report = LostItemReport()
        reduce_session(session, _intent(Intent.PROVIDE_PHONE), "9876543210")
        assert session.phone == "+19876543210"
        assert session.lost_item_report.phone == "+19876543210"

    def test_submitted_report_is_not_modified(self, session):
        session.lost_item_report = LostItemReport(name="Jane", reference_number="REF-ABC")
        reduce_session(session, _intent(Intent.PROVIDE_NAME), "thanks")
        assert session.lost_item_report.name == "Jane"

    def test_time_lost(self, session):
        session.lost_item_report = LostItemReport()
        reduce_session(session, _intent(Intent.PROVIDE_TIME), "yesterday evening")
        assert session.lost_item_report.time_lost == "yesterday evening"

    def test_company_info(self, session):
        reduce_session(session, _intent(Intent.LEARN_ABOUT_COMPANY), "about you")
        assert session.current_flow == ConversationFlow.COMPANY_INFO

    def test_help(self, session):
        reduce_session(session, _intent(Intent.REQUEST_HELP), "help")
        assert session.current_flow == ConversationFlow.HELP


class TestUnmappedIntents:
    @pytest.mark.parametrize(
        "intent",
        [Intent.GOODBYE, Intent.CONFIRM, Intent.DENY, Intent.GENERAL_QUERY, Intent.PROVIDE_EMAIL],
    )
    def test_session_unchanged(self, session, intent):
        session.current_flow = ConversationFlow.COLLECTING_CONTACT_INFO
        session.lost_item_report = LostItemReport(description="keys")
        before = session.model_dump()

        reduce_session(session, _intent(intent), "whatever")

        assert session.model_dump() == before

    def test_table_has_no_entry(self):
        assert get_transition(Intent.GENERAL_QUERY) is None
        assert Intent.REPORT_LOST_ITEM not in TRANSITIONS
