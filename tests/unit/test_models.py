"""Tests for Pydantic models."""

from datetime import datetime
from decimal import Decimal

import pytest

from triddle.models.base import generate_ulid
from triddle.models.form import CreateFormRequest, FieldType, Form, FormField, FormStatus, slugify
from triddle.models.response import Answer, Response, ResponseMetadata, SubmitResponseRequest
from triddle.models.visit import DeviceType, Visit


class TestBaseModel:
    """Tests for BaseModel."""

    def test_generate_ulid(self):
        """Test ULID generation."""
        ulid1 = generate_ulid()
        ulid2 = generate_ulid()

        assert len(ulid1) == 26
        assert ulid1 != ulid2

    def test_model_timestamps(self):
        """Test automatic timestamps and version."""
        form = Form(owner_id="user-1", title="Survey")

        assert form.created_at is not None
        assert form.updated_at is not None
        assert form.version == 1

    def test_model_serialization(self):
        """Stored items use camelCase names, ISO dates and Decimal numbers."""
        response = Response(
            id="resp-1",
            form_id="form-1",
            visit_id="visit-1",
            answers=[Answer(field_id="age", value=4.5)],
            metadata=ResponseMetadata(visit_id="visit-1", time_spent=12.5, is_complete=True),
        )

        db_item = response.to_dynamodb()

        assert db_item["formId"] == "form-1"
        assert db_item["visitId"] == "visit-1"
        assert db_item["answers"][0]["fieldId"] == "age"
        assert db_item["answers"][0]["value"] == Decimal("4.5")
        assert db_item["metadata"]["timeSpent"] == Decimal("12.5")
        assert db_item["metadata"]["isComplete"] is True
        assert isinstance(db_item["createdAt"], str)
        # None values are not stored
        assert "respondentId" not in db_item
        assert "fileUrl" not in db_item["answers"][0]

    def test_model_deserialization(self):
        """Test DynamoDB deserialization."""
        db_item = {
            "PK": "FORM#form-1",
            "SK": "RESPONSE#resp-1",
            "id": "resp-1",
            "formId": "form-1",
            "visitId": "visit-1",
            "answers": [
                {"fieldId": "age", "value": Decimal("42")},
                {"fieldId": "name", "value": "2024-01-01"},
            ],
            "metadata": {"startedAt": "2024-01-01T12:00:00+00:00", "isComplete": False},
            "createdAt": "2024-01-01T12:00:00+00:00",
            "updatedAt": "2024-01-01T12:00:00+00:00",
            "version": Decimal("3"),
        }

        response = Response.from_dynamodb(db_item)

        assert response.id == "resp-1"
        assert response.version == 3
        assert response.answers[0].value == 42
        # Free-text answers that look like dates stay strings
        assert response.answers[1].value == "2024-01-01"
        assert isinstance(response.created_at, datetime)
        assert isinstance(response.metadata.started_at, datetime)


class TestForm:
    """Tests for Form model."""

    def test_slug_derived_from_title(self):
        """Test slug generation."""
        form = Form(owner_id="user-1", title="Customer Survey 2024!")

        assert form.slug.startswith("customer-survey-2024-")

    def test_slugify_empty_title(self):
        """Titles without usable characters still get a slug."""
        assert slugify("!!!").startswith("untitled-form-")

    def test_form_keys(self, sample_form):
        """Test DynamoDB key generation."""
        assert sample_form.get_pk() == "FORM#form-123"
        assert sample_form.get_sk() == "META"

        gsi_keys = sample_form.get_gsi1_keys()
        assert gsi_keys["GSI1PK"] == "USER#user-owner-1#FORMS"
        assert gsi_keys["GSI1SK"] == sample_form.created_at.isoformat()

    def test_is_published(self, sample_form, draft_form):
        """Only published forms accept responses."""
        assert sample_form.is_published
        assert not draft_form.is_published

    def test_ordered_fields(self):
        """Fields sort by their order index."""
        form = Form(
            owner_id="user-1",
            title="Survey",
            fields=[
                FormField(field_id="b", label="B", order=2),
                FormField(field_id="a", label="A", order=1),
            ],
        )

        assert [f.field_id for f in form.ordered_fields()] == ["a", "b"]
        assert form.field_labels() == {"b": "B", "a": "A"}
        assert form.get_field("a").label == "A"
        assert form.get_field("missing") is None

    def test_field_accepts_camel_case(self):
        """Fields parse the designer's camelCase payload."""
        request = CreateFormRequest.model_validate(
            {
                "title": "Signup",
                "fields": [{"fieldId": "f1", "type": "longText", "label": "Bio"}],
            }
        )

        assert request.fields[0].field_id == "f1"
        assert request.fields[0].type == FieldType.LONG_TEXT
        assert request.status == FormStatus.DRAFT

    def test_unknown_field_type_rejected(self):
        """Test field type validation."""
        with pytest.raises(Exception):
            FormField(field_id="f1", type="hologram")


class TestVisit:
    """Tests for Visit model."""

    def test_visit_keys(self):
        """Test DynamoDB key generation."""
        visit = Visit(form_id="form-1", visit_id="visit-1")

        assert visit.get_pk() == "FORM#form-1"
        assert visit.get_sk() == "VISIT#visit-1"
        assert visit.metadata.device == DeviceType.UNKNOWN
        assert visit.metadata.referrer == ""
        assert visit.completed is False
        assert visit.open_response_id is None


class TestResponse:
    """Tests for Response model."""

    def test_response_keys(self):
        """Test DynamoDB key generation."""
        response = Response(id="resp-1", form_id="form-1", visit_id="visit-1")

        assert response.get_pk() == "FORM#form-1"
        assert response.get_sk() == "RESPONSE#resp-1"
        assert response.get_gsi1_keys() == {"GSI1PK": "RESPONSE#resp-1", "GSI1SK": "FORM#form-1"}

    def test_answer_for_returns_latest(self):
        """The last answer to a field wins."""
        response = Response(
            form_id="form-1",
            visit_id="visit-1",
            answers=[
                Answer(field_id="name", value="Ann"),
                Answer(field_id="age", value=30),
                Answer(field_id="name", value="Anna"),
            ],
        )

        assert response.answer_for("name").value == "Anna"
        assert response.answer_for("missing") is None

    def test_submit_request_defaults(self):
        """Test submission request parsing."""
        request = SubmitResponseRequest.model_validate(
            {"answers": [{"fieldId": "name", "value": "Ann"}]}
        )

        assert request.visit_id is None
        assert request.is_complete is False
        assert request.answers[0].field_id == "name"

    def test_answer_requires_field_id(self):
        """Test answer validation."""
        with pytest.raises(Exception):
            Answer(field_id="", value="x")
