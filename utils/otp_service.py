"""Passwordless citizen identity: OTP issue, verification and citizen id assignment."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Tuple

from models.records import IdentityRecord, OtpChallenge, utcnow
from utils.errors import (
    DuplicateKeyError,
    ExpiredChallenge,
    InternalError,
    InvalidCode,
    NoPendingChallenge,
    ValidationError,
)
from utils.repository import IdentityRepository, OtpStore
from utils.security import codes_match, generate_citizen_id, generate_otp
from utils.sms_service import SmsDeliveryError, SmsSink, mask_phone

MIN_PHONE_LENGTH = 10
MAX_CITIZEN_ID_ATTEMPTS = 20


def normalize_phone(phone: str | None) -> str:
    value = (phone or "").strip()
    if len(value) < MIN_PHONE_LENGTH:
        raise ValidationError("Valid phone number required")
    return value


class OtpIssuer:
    def __init__(
        self,
        otps: OtpStore,
        identities: IdentityRepository,
        sms: SmsSink,
        ttl_seconds: int = 300,
        max_attempts: int = 5,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        self.otps = otps
        self.identities = identities
        self.sms = sms
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_attempts = max_attempts
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def request_code(self, phone: str | None) -> Dict[str, object]:
        phone = normalize_phone(phone)
        code = generate_otp(4)
        self.otps.put(OtpChallenge(phone=phone, code=code, expires_at=self.clock() + self.ttl))

        delivered = True
        try:
            self.sms.send(phone, f"Your civic portal verification code is {code}. It expires in {self.ttl.seconds // 60} minutes.")
        except SmsDeliveryError as exc:
            delivered = False
            self.logger.warning("OTP delivery failed", extra={"phone": mask_phone(phone), "error": str(exc)})
        self.logger.info("OTP issued", extra={"phone": mask_phone(phone), "delivered": delivered})
        return {"delivered": delivered, "expiresInSeconds": int(self.ttl.total_seconds())}

    def verify_code(self, phone: str | None, code: str | None) -> Tuple[IdentityRecord, bool]:
        phone = (phone or "").strip()
        code = (code or "").strip()
        if not phone or not code:
            raise ValidationError("Phone and OTP are required")

        challenge = self.otps.get(phone)
        if challenge is None:
            raise NoPendingChallenge()

        if challenge.is_expired(self.clock()):
            self.otps.consume(phone, challenge.code)
            raise ExpiredChallenge()

        if not codes_match(challenge.code, code):
            attempts = self.otps.record_failure(phone, challenge.code)
            if attempts >= self.max_attempts:
                self.otps.consume(phone, challenge.code)
                self.logger.warning("OTP discarded after repeated failures", extra={"phone": mask_phone(phone)})
            raise InvalidCode()

        # Only one concurrent verifier can delete the stored code.
        if not self.otps.consume(phone, challenge.code):
            raise NoPendingChallenge()

        identity, is_new = self._get_or_create_identity(phone)
        self.logger.info(
            "OTP verified",
            extra={"citizen_id": identity.citizen_id, "is_new": is_new},
        )
        return identity, is_new

    def _get_or_create_identity(self, phone: str) -> Tuple[IdentityRecord, bool]:
        existing = self.identities.get_by_phone(phone)
        if existing is not None:
            return existing, False
        for _ in range(MAX_CITIZEN_ID_ATTEMPTS):
            record = IdentityRecord(phone=phone, citizen_id=generate_citizen_id(), joined_at=self.clock())
            try:
                return self.identities.create(record), True
            except DuplicateKeyError:
                existing = self.identities.get_by_phone(phone)
                if existing is not None:
                    return existing, False
        raise InternalError("Could not allocate a citizen id")
