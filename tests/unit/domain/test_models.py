import pytest

from prodcli.domain.errors import ApiError, RateLimitExceeded, ResolveNotFound
from prodcli.domain.models.resolve import ResolveResult
from prodcli.domain.models.resources import Person, ResourceType, Service


def test_resource_type_parse():
    assert ResourceType.parse("Person") is ResourceType.PERSON
    assert ResourceType.parse(ResourceType.DEAL) is ResourceType.DEAL
    with pytest.raises(ValueError, match="Expected one of"):
        ResourceType.parse("invoice")


def test_person_from_wire():
    person = Person.from_wire({"id": 7, "attributes": {"first_name": "John", "last_name": None}})
    assert person.id == "7"
    assert person.label == "John"
    assert person.resource_type is ResourceType.PERSON


def test_service_from_wire_without_project():
    service = Service.from_wire({"id": "1", "attributes": {"name": "Design"}, "relationships": {"project": {"data": None}}})
    assert service.project_id is None


def test_resolve_result_dict_round_trip():
    result = ResolveResult("1", ResourceType.COMPANY, "Acme", "acme", False)
    assert result.to_dict()["type"] == "company"
    assert ResolveResult.from_dict(result.to_dict()) == result


def test_rate_limit_message_mentions_attempts_and_retry():
    message = str(RateLimitExceeded(attempts=6, retry_after=2.0, endpoint="GET /people"))
    assert "6 attempt(s)" in message
    assert "wait 2s" in message
    assert "later" in message


def test_api_error_message():
    assert str(ApiError(500, "/people", "boom")) == "API request to /people failed with status 500: boom"


def test_resolve_error_to_dict():
    suggestion = ResolveResult("1", ResourceType.COMPANY, "Acme", "acm", False)
    error = ResolveNotFound("nothing", "acm", ResourceType.COMPANY, [suggestion])
    assert error.to_dict() == {
        "error": "ResolveNotFound",
        "message": "nothing",
        "query": "acm",
        "type": "company",
        "suggestions": [suggestion.to_dict()],
    }
