"""Tests for AuthValidator."""

import pytest
import requests

from conftest import make_response
from task_import.errors import (
    CredentialRejectedError,
    EmptyCredentialError,
    ProviderUnreachableError,
)
from task_import.logging_utils import registered_secret_count
from task_import.services.auth_validator import AuthValidator, ValidatedCredential
from task_import.services.source_registry import SourceRegistry

registry = SourceRegistry()
ASANA = registry.describe("asana")
JIRA = registry.describe("jira")
CSV = registry.describe("csv")

TOKEN = "1/1234567890:abcdefghijklmnop"


@pytest.fixture
def validator(mock_session) -> AuthValidator:
    return AuthValidator(timeout=5.0, session=mock_session)


class TestValidate:
    """Test credential validation outcomes."""

    @pytest.mark.asyncio
    async def test_accepted(self, validator, mock_session) -> None:
        """200 yields a validated credential with the account."""
        mock_session.request.return_value = make_response(200, {"data": {"gid": "42", "name": "Ada"}})

        result = await validator.validate(ASANA, TOKEN)

        assert isinstance(result, ValidatedCredential)
        assert result.secret == TOKEN
        assert result.account.display_name == "Ada"
        args, kwargs = mock_session.request.call_args
        assert args == ("GET", "https://app.asana.com/api/1.0/users/me")
        assert kwargs["headers"]["Authorization"] == f"Bearer {TOKEN}"
        assert kwargs["timeout"] == 5.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected(self, validator, mock_session, status) -> None:
        mock_session.request.return_value = make_response(status)

        with pytest.raises(CredentialRejectedError) as exc_info:
            await validator.validate(ASANA, TOKEN)

        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [200, 401, 503])
    async def test_credential_released_after_validation(self, validator, mock_session, status) -> None:
        """Repeated validations do not accumulate redaction entries."""
        mock_session.request.return_value = make_response(status, {"data": {"gid": "42"}})
        before = registered_secret_count()

        for _ in range(3):
            try:
                await validator.validate(ASANA, TOKEN)
            except (CredentialRejectedError, ProviderUnreachableError):
                pass

        assert registered_secret_count() == before

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_unreachable_status(self, validator, mock_session, status) -> None:
        mock_session.request.return_value = make_response(status)

        with pytest.raises(ProviderUnreachableError):
            await validator.validate(ASANA, TOKEN)

    @pytest.mark.asyncio
    async def test_connection_error(self, validator, mock_session) -> None:
        mock_session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(ProviderUnreachableError):
            await validator.validate(ASANA, TOKEN)

    @pytest.mark.asyncio
    async def test_timeout(self, validator, mock_session) -> None:
        mock_session.request.side_effect = requests.exceptions.Timeout()

        with pytest.raises(ProviderUnreachableError):
            await validator.validate(ASANA, TOKEN)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("credential", ["", "   ", None])
    async def test_empty_credential_makes_no_request(self, validator, mock_session, credential) -> None:
        with pytest.raises(EmptyCredentialError):
            await validator.validate(ASANA, credential)

        mock_session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_option_is_unreachable(self, validator, mock_session) -> None:
        """Jira without a site URL cannot be reached."""
        with pytest.raises(ProviderUnreachableError):
            await validator.validate(JIRA, "user@example.com:token123")

        mock_session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_options_are_used(self, mock_session) -> None:
        """Configured provider options are merged with per-call ones."""
        validator = AuthValidator(
            session=mock_session,
            provider_options={"jira": {"base_url": "https://configured.atlassian.net"}},
        )
        mock_session.request.return_value = make_response(200, {"accountId": "a1", "displayName": "Lin"})

        result = await validator.validate(JIRA, "user@example.com:token123")

        assert result.account.account_id == "a1"
        assert mock_session.request.call_args.args[1] == "https://configured.atlassian.net/rest/api/3/myself"

    @pytest.mark.asyncio
    async def test_malformed_identity_is_accepted(self, validator, mock_session) -> None:
        """A 200 with an unreadable body still validates the credential."""
        mock_session.request.return_value = make_response(200, ValueError("not json"))

        result = await validator.validate(ASANA, TOKEN)

        assert result.account.label == "unknown account"

    @pytest.mark.asyncio
    async def test_local_provider_skips_network(self, validator, mock_session) -> None:
        result = await validator.validate(CSV, "")

        assert result.provider is CSV
        mock_session.request.assert_not_called()


class TestValidatedCredential:
    """Test that validated credentials never expose the secret."""

    def test_repr_is_masked(self) -> None:
        credential = ValidatedCredential(ASANA, TOKEN)

        assert TOKEN not in repr(credential)
        assert TOKEN not in str(credential.to_dict())
        assert credential.masked.startswith("1/12")

    def test_matches(self) -> None:
        credential = ValidatedCredential(ASANA, TOKEN)

        assert credential.matches(ASANA, TOKEN)
        assert not credential.matches(ASANA, TOKEN + "x")
        assert not credential.matches(JIRA, TOKEN)
