"""
Adversarial tests for brute force attack prevention.

Verifies that guessing defenses hold under repeated attempts:
- OTP codes allow a fixed number of wrong guesses, then refuse even the right code
- Password guessing locks the account after the threshold
- Face login guessing is throttled per client address

Security rationale:
- A 6-digit code has 10^6 possibilities; an attempt budget of 4 keeps the
  success probability of blind guessing negligible
- Lockout caps online password guessing per account
"""

import pytest

from src.adapters.ratelimit import SlidingWindowRateLimiter
from src.domain.exceptions import Expired, InvalidInput, Locked, RateLimited, Unauthorized
from src.domain.identity import IdentityService, SignupRequest
from src.domain.models import DeviceInfo
from tests.support import STRONG_PASSWORD, RecordingSink

pytestmark = pytest.mark.adversarial


def wrong_codes(correct: str, count: int) -> list[str]:
    candidates = (f"{n:06d}" for n in range(1_000_000))
    return [c for c, _ in zip((c for c in candidates if c != correct), range(count))]


class TestOtpBruteForce:
    def test_code_space_exhaustion_is_blocked(self, service: IdentityService, sink: RecordingSink) -> None:
        """
        Attack scenario: enumerate codes 000000, 000001, ... against one code record.

        Expected defense: after 4 wrong guesses every further attempt is
        rejected as max_attempts, including the correct code.
        """
        result = service.signup(
            SignupRequest(email="victim@x.com", password=STRONG_PASSWORD, first_name="Vic", last_name="Tim")
        )
        correct = sink.last_code()
        outcomes: list[str] = []

        for guess in wrong_codes(correct, 10):
            try:
                service.verify_otp(result.otp.otp_id, guess)
            except (InvalidInput, Expired) as exc:
                outcomes.append(exc.reason)

        assert outcomes[:4] == ["mismatch"] * 4
        assert outcomes[4:] == ["max_attempts"] * 6
        with pytest.raises(Expired):
            service.verify_otp(result.otp.otp_id, correct)
        assert service.codes.find_by_id(result.otp.otp_id).attempts == 4

    def test_resend_does_not_revive_exhausted_code(
        self, service: IdentityService, sink: RecordingSink
    ) -> None:
        result = service.signup(
            SignupRequest(email="victim@x.com", password=STRONG_PASSWORD, first_name="Vic", last_name="Tim")
        )
        correct = sink.last_code()
        for guess in wrong_codes(correct, 4):
            with pytest.raises(InvalidInput):
                service.verify_otp(result.otp.otp_id, guess)

        service.resend_otp(result.account_id)

        with pytest.raises(Expired):
            service.verify_otp(result.otp.otp_id, correct)


class TestPasswordBruteForce:
    def test_lockout_stops_guessing(self, service: IdentityService, register_active) -> None:
        """
        Attack scenario: dictionary attack on one account.

        Expected defense: after 5 failures every attempt is Locked, even
        with the right password, so the attacker learns nothing more.
        """
        register_active("victim@x.com")
        errors: list[type] = []

        for n in range(10):
            try:
                service.sign_in("victim@x.com", f"Guess!{n:04d}Aa")
            except (Unauthorized, Locked) as exc:
                errors.append(type(exc))

        assert errors[:5] == [Unauthorized] * 5
        assert errors[5:] == [Locked] * 5
        with pytest.raises(Locked):
            service.sign_in("victim@x.com", STRONG_PASSWORD)

    def test_locked_attempts_do_not_extend_counter(self, service: IdentityService, register_active) -> None:
        account_id = register_active("victim@x.com")
        for _ in range(8):
            with pytest.raises((Unauthorized, Locked)):
                service.sign_in("victim@x.com", "Wr0ng!Password")

        assert service.accounts.find_by_id(account_id).failed_login_attempts == 5


class TestFaceBruteForce:
    def test_template_guessing_is_throttled(self, service: IdentityService) -> None:
        limited = IdentityService(
            accounts=service.accounts,
            codes=service.codes,
            sessions=service.sessions,
            notifications=service.notifications,
            tokens=service.tokens,
            hasher=service.hasher,
            face_login_limiter=SlidingWindowRateLimiter(max_requests=10, window_seconds=300),
            clock=service.clock,
        )
        device = DeviceInfo(device_type="mobile", ip_address="203.0.113.7")
        rejected = 0

        for n in range(15):
            try:
                limited.face_login({"guess": n}, device)
            except Unauthorized:
                pass
            except RateLimited:
                rejected += 1

        assert rejected == 5
