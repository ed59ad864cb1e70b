"""Prepaid token balance: the alternate payment rail.

1 token = 1 verification = `cents_per_token` cents. The rate is the order price
per unit, so a token purchase and an order of the same size always cost the same.
"""

from app.core.exceptions import InvalidRequest, NotFound
from app.database.models import UserRecord
from app.database.repositories.user_repository import UserRepository
from app.logging.logger import Log
from app.pricing import price_cents
from app.tokens.models import DeductionResult

INSUFFICIENT_TOKENS = "InsufficientTokens"


class TokenAccounting:
    """Per-user token balance tracking, deduction, credit and demo policy."""

    def __init__(
        self,
        user_repo: UserRepository,
        *,
        cents_per_token: int,
        demo_emails: frozenset[str],
        demo_token_floor: int,
    ) -> None:
        if cents_per_token <= 0:
            raise ValueError("cents_per_token must be positive")
        self._user_repo = user_repo
        self._cents_per_token = cents_per_token
        self._demo_emails = demo_emails
        self._demo_token_floor = demo_token_floor

    def is_demo_account(self, email: str | None) -> bool:
        if not email:
            return False
        return email.strip().lower() in self._demo_emails

    def get_or_create_user(self, email: str) -> UserRecord:
        """Return the user for `email`, creating it on first sight.

        New demo users start at the floor balance; existing demo users are
        topped back up to it.
        """
        is_demo = self.is_demo_account(email)
        user = self._user_repo.get_user_by_email(email)
        if user is None:
            initial = self._demo_token_floor if is_demo else 0
            user = self._user_repo.create_user(email, tokens=initial)
            Log.info(f"Created user {user.id} ({'demo' if is_demo else 'standard'}) with {user.tokens} tokens")
        if is_demo and user.tokens < self._demo_token_floor:
            topped = self._user_repo.ensure_token_floor(user.id, self._demo_token_floor)
            if topped is not None:
                Log.info(f"Demo user {user.id} topped up to {topped.tokens} tokens")
                user = topped
        return user

    def balance(self, user_id: str) -> int:
        user = self._user_repo.get_user(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user.tokens

    def deduct(self, user_id: str, amount: int = 1) -> DeductionResult:
        """Subtract `amount` tokens if the balance covers it.

        The check and the decrement are one conditional update, so concurrent
        deductions for the same user can never overdraw the balance.
        """
        if amount <= 0:
            raise InvalidRequest("Deduction amount must be positive")
        remaining = self._user_repo.deduct_tokens(user_id, amount)
        if remaining is None:
            Log.warning(f"Token deduction of {amount} refused for user {user_id}")
            return DeductionResult(success=False, error=INSUFFICIENT_TOKENS)
        Log.info(f"Deducted {amount} token(s) from user {user_id}, {remaining} remaining")
        return DeductionResult(success=True, remaining_tokens=remaining)

    def credit(self, user_id: str, amount: int) -> UserRecord:
        """Add tokens unconditionally. De-duplication is the caller's job."""
        if amount <= 0:
            raise InvalidRequest("Credit amount must be positive")
        user = self._user_repo.credit_tokens(user_id, amount)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        Log.info(f"Credited {amount} token(s) to user {user_id}, balance {user.tokens}")
        return user

    def credit_for_reference(self, user_id: str, amount: int, reference: str) -> UserRecord | None:
        """Credit tokens bought under a payment reference; None if already credited."""
        if amount <= 0:
            raise InvalidRequest("Credit amount must be positive")
        user = self._user_repo.credit_tokens_once(user_id, amount, reference)
        if user is None:
            Log.info(f"Token credit for reference {reference} already applied, skipping")
            return None
        Log.info(
            f"Credited {amount} token(s) to user {user_id} for reference {reference}, "
            f"balance {user.tokens}"
        )
        return user

    def cents_for_tokens(self, tokens: int) -> int:
        if tokens < 0:
            raise ValueError("tokens must be >= 0")
        if tokens == 0:
            return 0
        return price_cents(tokens, self._cents_per_token)

    def tokens_for_cents(self, cents: int) -> int:
        """Whole tokens covered by `cents`; exact inverse of cents_for_tokens."""
        if cents < 0:
            raise ValueError("cents must be >= 0")
        return cents // self._cents_per_token
