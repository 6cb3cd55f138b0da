"""Management override verification."""

from __future__ import annotations

import logging
import secrets

from pydantic import SecretStr

from frameshop.utils.masking import sanitize_log_value

logger = logging.getLogger(__name__)


class OverrideAuthorizationGate:
    """Checks a supplied override code against the configured secret.

    Without a configured secret every attempt is denied.  The supplied code
    is never logged.
    """

    def __init__(self, override_code: SecretStr | str | None) -> None:
        if isinstance(override_code, SecretStr):
            override_code = override_code.get_secret_value()
        self._secret = override_code.encode("utf-8") if override_code else None

    @property
    def configured(self) -> bool:
        return self._secret is not None

    def verify_management_authorization(
        self,
        override_code: str | None,
        actor_id: str,
        reason: str | None,
    ) -> bool:
        supplied = (override_code or "").encode("utf-8")
        authorized = self._secret is not None and secrets.compare_digest(supplied, self._secret)

        if authorized:
            logger.info(
                "Management override authorized actor=%s reason=%s",
                sanitize_log_value(actor_id),
                sanitize_log_value(reason),
            )
        else:
            logger.warning(
                "Management override denied actor=%s reason=%s configured=%s",
                sanitize_log_value(actor_id),
                sanitize_log_value(reason),
                self._secret is not None,
            )
        return authorized
