"""Exchange credentials held in the config document."""

from typing import Mapping, Union

from core.config_store import ConfigStore
from core.errors import ConfigNotFound, ValidationFailed
from core.logging_utils import get_logger
from core.models import ConfigDocument, Credentials

logger = get_logger(__name__)

CREDENTIAL_FIELDS = ("key", "secret", "passphrase")


class CredentialManager:
    """Validates and mutates the credentials section only."""

    def __init__(self, store: ConfigStore):
        self.store = store

    async def get_credentials(self) -> Credentials:
        """Stored credentials, or empty ones when no document exists yet."""
        try:
            doc = await self.store.load()
        except ConfigNotFound:
            return Credentials.empty()
        return doc.credentials

    async def has_valid_credentials(self) -> bool:
        creds = await self.get_credentials()
        return creds.is_valid

    async def set_credentials(self, new_creds: Union[Credentials, Mapping[str, object]]) -> Credentials:
        """Replace the credentials section; autotrade state is untouched."""
        creds = self._coerce(new_creds)

        def _mutate(doc: ConfigDocument) -> ConfigDocument:
            return doc.with_credentials(creds)

        await self.store.update_atomic(_mutate)
        logger.info("[CREDS] Credentials saved (%s)", "complete" if creds.is_valid else "incomplete")
        return creds

    async def clear_credentials(self) -> None:
        """
        Delete the whole config document.

        This also drops any pending autotrade schedule: a credential reset
        revokes the authorization for that trade. Callers must warn about both.
        """
        await self.store.clear()
        logger.warning("[CREDS] Credentials cleared; autotrade schedule removed with them")

    @staticmethod
    def _coerce(new_creds: Union[Credentials, Mapping[str, object]]) -> Credentials:
        if isinstance(new_creds, Credentials):
            return new_creds
        if not isinstance(new_creds, Mapping):
            logger.warning("[CREDS] Rejected credentials: expected a mapping, got %s", type(new_creds).__name__)
            raise ValidationFailed("Credentials must be a mapping with key, secret and passphrase")

        missing = [name for name in CREDENTIAL_FIELDS if name not in new_creds]
        if missing:
            logger.warning("[CREDS] Rejected credentials: missing %s", ", ".join(missing))
            raise ValidationFailed(f"Credentials missing field(s): {', '.join(missing)}")
        wrong = [name for name in CREDENTIAL_FIELDS if not isinstance(new_creds[name], str)]
        if wrong:
            logger.warning("[CREDS] Rejected credentials: non-string %s", ", ".join(wrong))
            raise ValidationFailed(f"Credential field(s) must be strings: {', '.join(wrong)}")

        return Credentials(**{name: new_creds[name] for name in CREDENTIAL_FIELDS})
