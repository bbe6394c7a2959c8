"""
Account resolution for ingestion batches.

Matches the account details extracted with a batch (last-4 digits, official
name) against the user's known accounts. The resolver never guesses: when
several accounts fit equally it returns them for disambiguation.
"""

from typing import Any, Optional
import logging

from ..models.account import (
    Account,
    AccountContext,
    AccountResolution,
    AccountSource,
    ResolutionStatus,
    SourceType,
)
from ..store.base import TransactionStore
from ..utils.exceptions import AccountResolutionError

logger = logging.getLogger(__name__)


class AccountResolver:
    """Resolve-or-create accounts against a ``TransactionStore``."""

    def __init__(self, store: TransactionStore):
        self.store = store

    def resolve(self, user_id: str, context: AccountContext) -> AccountResolution:
        """
        Resolve the account a batch belongs to.

        Args:
            user_id: Owner of the batch
            context: Extracted account details

        Returns:
            AccountResolution with status RESOLVED, CREATED,
            NEEDS_DISAMBIGUATION or DEFERRED

        Raises:
            AccountResolutionError: If no account matched and creating one failed
        """
        warnings: list[str] = []

        if context.account_id:
            return self._resolve_by_id(user_id, context.account_id, warnings)

        official_name = (context.official_name or "").strip() or None
        last4 = context.effective_last4

        if context.source_type is SourceType.SCREENSHOT and not official_name:
            return AccountResolution(
                status=ResolutionStatus.DEFERRED,
                reason="Screenshot without account name; account selection needed",
            )

        if last4:
            return self._resolve_by_last4(user_id, context, last4, official_name, warnings)

        if official_name:
            return self._resolve_by_name(user_id, context, official_name, warnings)

        return AccountResolution(
            status=ResolutionStatus.DEFERRED,
            reason="No account identifier extracted; account selection needed",
        )

    def _resolve_by_id(
        self, user_id: str, account_id: str, warnings: list[str]
    ) -> AccountResolution:
        try:
            account = self.store.get_account(user_id, account_id)
        except Exception as e:
            logger.warning(f"Account lookup for {account_id} failed: {e}")
            warnings.append(f"Account lookup failed: {e}")
            account = None

        if account is None:
            return AccountResolution(
                status=ResolutionStatus.DEFERRED,
                reason=f"Selected account {account_id} not found",
                warnings=warnings,
            )
        return AccountResolution(
            status=ResolutionStatus.RESOLVED,
            account=account,
            reason="Account selected explicitly",
            warnings=warnings,
        )

    def _resolve_by_last4(
        self,
        user_id: str,
        context: AccountContext,
        last4: str,
        official_name: Optional[str],
        warnings: list[str],
    ) -> AccountResolution:
        try:
            matches = self.store.find_accounts_by_last4(user_id, last4)
        except Exception as e:
            # Fail open: an unreachable account index means "no match"
            logger.warning(f"Account search by last4 ****{last4} failed: {e}")
            warnings.append(f"Account search by last4 failed: {e}")
            matches = []

        if len(matches) == 1:
            logger.info(f"Linked to existing account '{matches[0].display_name}' (****{last4})")
            return AccountResolution(
                status=ResolutionStatus.RESOLVED,
                account=matches[0],
                reason=f"Unique account with last4 ****{last4}",
                warnings=warnings,
            )

        if len(matches) > 1:
            logger.info(f"Found {len(matches)} accounts with ****{last4}; needs disambiguation")
            return AccountResolution(
                status=ResolutionStatus.NEEDS_DISAMBIGUATION,
                candidates=matches,
                reason=f"{len(matches)} accounts end in ****{last4}",
                warnings=warnings,
            )

        display_name = official_name or f"Account ****{last4}"
        account, created = self._get_or_create(
            user_id, self._attrs(context, display_name, official_name, last4)
        )

        if not created and account.last4 and account.last4 != last4:
            # Same name, different card: keep them apart
            display_name = f"{display_name} ****{last4}"
            account, created = self._get_or_create(
                user_id, self._attrs(context, display_name, official_name, last4)
            )

        return AccountResolution(
            status=ResolutionStatus.CREATED if created else ResolutionStatus.RESOLVED,
            account=account,
            reason=(
                f"Created account for ****{last4}"
                if created
                else f"Matched account '{display_name}' by name"
            ),
            warnings=warnings,
        )

    def _resolve_by_name(
        self,
        user_id: str,
        context: AccountContext,
        official_name: str,
        warnings: list[str],
    ) -> AccountResolution:
        try:
            matches = self.store.find_accounts_by_name(user_id, official_name)
        except Exception as e:
            logger.warning(f"Account search by name '{official_name}' failed: {e}")
            warnings.append(f"Account search by name failed: {e}")
            matches = []

        if len(matches) == 1:
            return AccountResolution(
                status=ResolutionStatus.RESOLVED,
                account=matches[0],
                reason=f"Unique account named '{official_name}'",
                warnings=warnings,
            )

        if len(matches) > 1:
            return AccountResolution(
                status=ResolutionStatus.NEEDS_DISAMBIGUATION,
                candidates=matches,
                reason=f"{len(matches)} accounts named '{official_name}'",
                warnings=warnings,
            )

        account, created = self._get_or_create(
            user_id, self._attrs(context, official_name, official_name, None)
        )
        return AccountResolution(
            status=ResolutionStatus.CREATED if created else ResolutionStatus.RESOLVED,
            account=account,
            reason=f"{'Created' if created else 'Found'} account '{official_name}'",
            warnings=warnings,
        )

    def _get_or_create(self, user_id: str, attrs: dict[str, Any]) -> tuple[Account, bool]:
        try:
            account, created = self.store.get_or_create_account(user_id, attrs)
        except Exception as e:
            logger.error(f"Failed to create account '{attrs['display_name']}': {e}")
            raise AccountResolutionError(
                f"Failed to create account '{attrs['display_name']}': {e}"
            ) from e

        if created:
            logger.info(f"Created new account: {account.display_name}")
        return account, created

    @staticmethod
    def _attrs(
        context: AccountContext,
        display_name: str,
        official_name: Optional[str],
        last4: Optional[str],
    ) -> dict[str, Any]:
        source = (
            AccountSource.SYNC if context.source_type is SourceType.SYNC else AccountSource.STATEMENT
        )
        return {
            "display_name": display_name,
            "official_name": official_name,
            "last4": last4,
            "issuer": context.issuer,
            "account_type": context.account_type,
            "source": source,
        }
