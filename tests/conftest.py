"""Pytest configuration and fixtures."""

import json
import os

import jwt
import pytest

# Set environment variables before imports
os.environ["TABLE_NAME"] = "triddle-test"
os.environ["UPLOADS_BUCKET"] = "triddle-test-uploads"
os.environ["STAGE"] = "test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["FRONTEND_URL"] = "https://forms.example.com"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

OWNER_ID = "user-owner-1"
OTHER_USER_ID = "user-other-2"
ADMIN_ID = "user-admin-3"

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


@pytest.fixture
def aws_credentials():
    """Mock AWS credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Create mocked DynamoDB table."""
    import boto3
    from moto import mock_aws

    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")

        table = dynamodb.create_table(
            TableName="triddle-test",
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
                {"AttributeName": "GSI1PK", "AttributeType": "S"},
                {"AttributeName": "GSI1SK", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": "GSI1",
                    "KeySchema": [
                        {"AttributeName": "GSI1PK", "KeyType": "HASH"},
                        {"AttributeName": "GSI1SK", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                },
            ],
            BillingMode="PAY_PER_REQUEST",
        )

        table.wait_until_exists()

        yield table


@pytest.fixture
def uploads_bucket(dynamodb_table):
    """Create the mocked uploads bucket (inside the same moto context)."""
    import boto3

    s3 = boto3.client("s3", region_name="us-east-1")
    s3.create_bucket(Bucket="triddle-test-uploads")
    return s3


@pytest.fixture
def repos(dynamodb_table):
    """Form, visit and response repositories bound to the mocked table."""
    from triddle.repositories import FormRepository, ResponseRepository, VisitRepository

    return {
        "forms": FormRepository(),
        "visits": VisitRepository(),
        "responses": ResponseRepository(),
    }


def _form_fields() -> list:
    from triddle.models.form import FieldOption, FormField

    return [
        FormField(field_id="name", type="text", label="Name", order=0),
        FormField(
            field_id="color",
            type="radio",
            label="Favorite color",
            order=1,
            options=[FieldOption(label="Red", value="red"), FieldOption(label="Blue", value="blue")],
        ),
        FormField(field_id="age", type="number", label="Age", order=2),
        FormField(
            field_id="toppings",
            type="checkbox",
            label="Toppings",
            order=3,
            options=[FieldOption(label="Cheese", value="cheese"), FieldOption(label="Ham", value="ham")],
        ),
        FormField(field_id="resume", type="fileUpload", label="Resume", order=4),
    ]


@pytest.fixture
def sample_form():
    """A published form with one field of each aggregate kind."""
    from triddle.models.form import Form, FormStatus

    return Form(
        id="form-123",
        owner_id=OWNER_ID,
        title="Customer Survey",
        description="Tell us about yourself",
        fields=_form_fields(),
        status=FormStatus.PUBLISHED,
    )


@pytest.fixture
def draft_form():
    """An unpublished form."""
    from triddle.models.form import Form, FormStatus

    return Form(
        id="form-draft",
        owner_id=OWNER_ID,
        title="Work in progress",
        fields=_form_fields(),
        status=FormStatus.DRAFT,
    )


@pytest.fixture
def stored_form(repos, sample_form):
    """The sample form saved in the mocked table."""
    return repos["forms"].create_form(sample_form)


@pytest.fixture
def make_token():
    """Sign a bearer token the way the account service does."""

    def _make_token(user_id: str = OWNER_ID, role: str = "USER") -> str:
        return jwt.encode({"id": user_id, "role": role}, "test-secret", algorithm="HS256")

    return _make_token


@pytest.fixture
def api_gateway_event():
    """Create a sample API Gateway event."""

    def _create_event(
        method: str = "GET",
        path: str = "/",
        path_params: dict = None,
        query_params: dict = None,
        body: dict = None,
        user_id: str | None = OWNER_ID,
        role: str = "USER",
        headers: dict = None,
    ):
        request_context: dict = {"identity": {"sourceIp": "203.0.113.7"}}
        if user_id:
            request_context["authorizer"] = {
                "userId": user_id,
                "role": role,
                "email": "test@example.com",
            }

        return {
            "httpMethod": method,
            "path": path,
            "pathParameters": path_params or {},
            "queryStringParameters": query_params or {},
            "body": body if isinstance(body, str) else (json.dumps(body) if body is not None else None),
            "headers": {
                "Content-Type": "application/json",
                "User-Agent": CHROME_UA,
                **(headers or {}),
            },
            "requestContext": request_context,
        }

    return _create_event


class LambdaContext:
    """Mock Lambda context."""

    def __init__(self):
        self.function_name = "test-function"
        self.memory_limit_in_mb = 128
        self.invoked_function_arn = "arn:aws:lambda:us-east-1:123456789:function:test"
        self.aws_request_id = "test-request-id"

    def get_remaining_time_in_millis(self):
        return 30000


@pytest.fixture
def lambda_context():
    """Create a mock Lambda context."""
    return LambdaContext()
