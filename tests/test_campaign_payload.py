"""Tests for turning a campaign draft into the campaign service payload."""

import pytest
from pydantic import ValidationError

from schemas.campaign import CampaignDraft, Prospect
from schemas.sequence import WarningCode
from services.campaign_payload import prepare_campaign, prospect_value


@pytest.fixture
def prospects():
    return [
        Prospect(name="Ada Lovelace", email="ada@analytical.io", company="Analytical Engines"),
        Prospect(name="Charles", email="charles@babbage.io"),
    ]


class TestProspectValue:
    def test_first_name_from_name(self, prospects):
        assert prospect_value(prospects[0], "first_name") == "Ada"

    def test_missing_field(self, prospects):
        assert prospect_value(prospects[1], "company") is None
        assert prospect_value(prospects[1], "position") is None

    def test_plain_field(self, prospects):
        assert prospect_value(prospects[0], "email") == "ada@analytical.io"


class TestPrepareCampaign:
    def test_normalises_sequence(self, prospects, scenario_steps):
        draft = CampaignDraft(name="Q4 outreach", prospects=prospects, sequence=scenario_steps)

        prepared = prepare_campaign(draft)

        assert prepared.warnings == []
        steps = {step["id"]: step for step in prepared.payload.sequence}
        assert steps["root"]["content"]["variables"] == ["first_name"]
        assert steps["follow"]["x"] == 110
        assert prepared.payload.prospects == prospects

    def test_warns_about_missing_prospect_data(self, prospects, scenario_steps):
        scenario_steps[0]["content"]["message"] = "Loved what {{company}} is doing"
        draft = CampaignDraft(name="Q4 outreach", prospects=prospects, sequence=scenario_steps)

        prepared = prepare_campaign(draft)

        assert [w.code for w in prepared.warnings] == [WarningCode.MISSING_PROSPECT_FIELD]
        assert prepared.warnings[0].message == "1 prospect(s) have no value for {{company}}"

    def test_sequence_warnings_are_passed_through(self, prospects):
        draft = CampaignDraft(
            name="Broken",
            prospects=prospects,
            sequence=[{"id": "a", "stepType": "email", "parentId": "ghost"}],
        )
        prepared = prepare_campaign(draft)
        assert [w.code for w in prepared.warnings] == [WarningCode.UNKNOWN_PARENT]

    def test_draft_needs_a_name(self):
        with pytest.raises(ValidationError):
            CampaignDraft(name="")

    def test_prospect_needs_valid_email(self):
        with pytest.raises(ValidationError):
            Prospect(name="Nobody", email="not-an-email")
