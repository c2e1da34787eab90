"""
AccountRegistry -- the chart of accounts.

Responsibility:
    Source of truth for valid posting targets and their type/sign
    convention.  The Ledger Engine depends on ``get``, ``is_postable`` and
    ``type_of``; the administration operations keep the chart consistent
    (code format, code/type agreement, hierarchy) when it is populated.

Architecture position:
    Kernel > Services.  Imports models/, domain/ and db/.

Invariants enforced:
    - Code format: three or four digits, first digit 1-5 naming the type.
    - Hierarchy: parent code is a strict prefix of the child code and the
      parent shares the child's type.
    - balance is never written here.  It belongs to LedgerEngine.
    - An account referenced by journal entries is never deleted.

Failure modes:
    - AccountNotFoundError, InvalidAccountCodeError, AccountTypeMismatchError,
      AccountCodeExistsError, AccountHierarchyError, AccountReferencedError,
      AccountHasChildrenError.

Transaction boundary:
    Mutations flush only.  The caller commits.
"""

from uuid import UUID

from sqlalchemy import func, or_, select

from ledger_kernel.db.unit_of_work import translate_storage_errors
from ledger_kernel.domain.account_codes import (
    is_valid_account_code,
    is_valid_hierarchy,
    type_for_code,
)
from ledger_kernel.domain.dtos import AccountDTO, AccountIntegrityIssue, AccountNode
from ledger_kernel.exceptions import (
    AccountCodeExistsError,
    AccountHasChildrenError,
    AccountHierarchyError,
    AccountNotFoundError,
    AccountReferencedError,
    AccountTypeMismatchError,
    InvalidAccountCodeError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.transaction import JournalEntry
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_registry")

_UNSET = object()


def account_to_dto(account: Account) -> AccountDTO:
    """Convert ORM model to DTO."""
    return AccountDTO(
        id=account.id,
        code=account.code,
        name=account.name,
        account_type=AccountType(account.account_type).value,
        parent_id=account.parent_id,
        is_active=account.is_active,
        balance=account.balance,
        description=account.description,
    )


class AccountRegistry(BaseService[Account]):
    """
    Chart-of-accounts lookups and administration.

    Contract:
        Lookups return AccountDTO, never ORM instances.
        Mutations validate first and flush; nothing is committed here.
    """

    # -- Lookup surface used by the Ledger Engine -----------------------------

    def _load(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def get(self, account_id: UUID) -> AccountDTO:
        """
        Get an account by id.

        Raises:
            AccountNotFoundError: No account with this id.
        """
        with translate_storage_errors("get_account"):
            return account_to_dto(self._load(account_id))

    def is_postable(self, account_id: UUID) -> bool:
        """True iff the account exists and is active."""
        with translate_storage_errors("is_postable"):
            account = self.session.get(Account, account_id)
        return account is not None and account.is_active

    def type_of(self, account_id: UUID) -> AccountType:
        """The stored type, which picks the balance sign rule."""
        with translate_storage_errors("type_of"):
            return AccountType(self._load(account_id).account_type)

    def get_by_code(self, code: str) -> AccountDTO | None:
        account = self.session.scalars(
            select(Account).where(Account.code == code)
        ).first()
        return account_to_dto(account) if account is not None else None

    def list_accounts(
        self,
        account_type: AccountType | str | None = None,
        is_active: bool | None = None,
        parent_id: UUID | None | object = _UNSET,
    ) -> list[AccountDTO]:
        """
        List accounts ordered by code.

        ``parent_id=None`` selects root accounts; leaving it out applies no
        parent filter.
        """
        query = select(Account).order_by(Account.code)
        if account_type is not None:
            query = query.where(Account.account_type == AccountType(account_type).value)
        if is_active is not None:
            query = query.where(Account.is_active == is_active)
        if parent_id is None:
            query = query.where(Account.parent_id.is_(None))
        elif parent_id is not _UNSET:
            query = query.where(Account.parent_id == parent_id)
        return [account_to_dto(a) for a in self.session.scalars(query)]

    def search(self, text: str) -> list[AccountDTO]:
        """Case-insensitive substring match on name or code over active accounts.

        ``%`` and ``_`` in ``text`` match themselves.
        """
        query = (
            select(Account)
            .where(
                Account.is_active.is_(True),
                or_(
                    Account.name.icontains(text, autoescape=True),
                    Account.code.icontains(text, autoescape=True),
                ),
            )
            .order_by(Account.code)
        )
        return [account_to_dto(a) for a in self.session.scalars(query)]

    # -- Administration --------------------------------------------------------

    def _check_parent(
        self,
        code: str,
        account_type: AccountType,
        parent_id: UUID,
    ) -> Account:
        parent = self.session.get(Account, parent_id)
        if parent is None:
            raise AccountHierarchyError(code, f"parent account {parent_id} not found")
        if AccountType(parent.account_type) != account_type:
            raise AccountHierarchyError(
                code,
                f"parent {parent.code} is {parent.account_type}, "
                f"child is {account_type.value}",
            )
        if not is_valid_hierarchy(parent.code, code):
            raise AccountHierarchyError(
                code, f"code must extend the parent code {parent.code}"
            )
        return parent

    def create_account(
        self,
        code: str,
        name: str,
        account_type: AccountType | str,
        parent_id: UUID | None = None,
        description: str | None = None,
    ) -> AccountDTO:
        """
        Create an account with a zero balance.

        Raises:
            InvalidAccountCodeError: Code is not 1xx(x)-5xx(x).
            AccountTypeMismatchError: Type disagrees with the code's first digit.
            AccountCodeExistsError: Code already taken.
            AccountHierarchyError: Parent missing, of another type, or its
                code is not a prefix of this one.
        """
        if not is_valid_account_code(code):
            raise InvalidAccountCodeError(code)
        account_type = AccountType(account_type)
        expected = type_for_code(code)
        if expected != account_type:
            raise AccountTypeMismatchError(code, account_type.value, expected.value)
        if not name or not name.strip():
            raise ValueError("Account name must not be blank")

        with translate_storage_errors("create_account"):
            if self.get_by_code(code) is not None:
                raise AccountCodeExistsError(code)
            if parent_id is not None:
                self._check_parent(code, account_type, parent_id)

            account = Account(
                code=code,
                name=name.strip(),
                account_type=account_type.value,
                parent_id=parent_id,
                description=description,
            )
            self.session.add(account)
            self.session.flush()

        logger.info(
            "account_created",
            extra={
                "account_id": str(account.id),
                "account_code": code,
                "account_type": account_type.value,
            },
        )
        return account_to_dto(account)

    def update_account(
        self,
        account_id: UUID,
        name: str | None = None,
        description: str | None = None,
        parent_id: UUID | None | object = _UNSET,
    ) -> AccountDTO:
        """
        Rename, re-describe or re-parent an account.

        Code, type and balance cannot be changed here.
        """
        account = self._load(account_id)
        if name is not None:
            if not name.strip():
                raise ValueError("Account name must not be blank")
            account.name = name.strip()
        if description is not None:
            account.description = description
        if parent_id is not _UNSET:
            if parent_id is not None:
                if parent_id == account.id:
                    raise AccountHierarchyError(account.code, "account cannot be its own parent")
                self._check_parent(
                    account.code, AccountType(account.account_type), parent_id
                )
            account.parent_id = parent_id
        self.session.flush()
        logger.info(
            "account_updated",
            extra={"account_id": str(account.id), "account_code": account.code},
        )
        return account_to_dto(account)

    def _set_active(self, account_id: UUID, active: bool) -> AccountDTO:
        account = self._load(account_id)
        account.is_active = active
        self.session.flush()
        logger.info(
            "account_activated" if active else "account_deactivated",
            extra={"account_id": str(account.id), "account_code": account.code},
        )
        return account_to_dto(account)

    def deactivate(self, account_id: UUID) -> AccountDTO:
        """Stop the account from accepting new postings."""
        return self._set_active(account_id, False)

    def activate(self, account_id: UUID) -> AccountDTO:
        return self._set_active(account_id, True)

    def delete(self, account_id: UUID) -> None:
        """
        Delete an account that was never posted to and has no children.

        Raises:
            AccountReferencedError: Journal entries reference the account.
            AccountHasChildrenError: Other accounts name it as parent.
        """
        account = self._load(account_id)
        entry_count = self.session.scalar(
            select(func.count()).select_from(JournalEntry).where(
                JournalEntry.account_id == account_id
            )
        )
        if entry_count:
            raise AccountReferencedError(str(account_id))
        child_count = self.session.scalar(
            select(func.count()).select_from(Account).where(
                Account.parent_id == account_id
            )
        )
        if child_count:
            raise AccountHasChildrenError(str(account_id), child_count)
        code = account.code
        self.session.delete(account)
        self.session.flush()
        logger.info(
            "account_deleted",
            extra={"account_id": str(account_id), "account_code": code},
        )

    def hierarchy(self, account_type: AccountType | str | None = None) -> list[AccountNode]:
        """Tree of active accounts.  Roots and children ordered by code."""
        accounts = self.list_accounts(account_type=account_type, is_active=True)
        nodes = {a.id: AccountNode(account=a) for a in accounts}
        roots = []
        for account in accounts:
            node = nodes[account.id]
            parent = nodes.get(account.parent_id) if account.parent_id else None
            if parent is not None:
                parent.children.append(node)
            else:
                roots.append(node)
        return roots

    def verify_integrity(self) -> list[AccountIntegrityIssue]:
        """
        Report accounts that break the chart-of-accounts rules.

        Nothing is corrected: a stored type that disagrees with the type
        implied by the code is a data error for an operator to resolve.
        """
        accounts = list(self.session.scalars(select(Account).order_by(Account.code)))
        by_id = {a.id: a for a in accounts}
        issues = []
        for account in accounts:
            if not is_valid_account_code(account.code):
                issues.append(
                    AccountIntegrityIssue(
                        account_id=account.id,
                        account_code=account.code,
                        issue="INVALID_CODE",
                        detail=f"code {account.code!r} is not 1xx(x)-5xx(x)",
                    )
                )
            else:
                implied = type_for_code(account.code)
                if implied != AccountType(account.account_type):
                    issues.append(
                        AccountIntegrityIssue(
                            account_id=account.id,
                            account_code=account.code,
                            issue="TYPE_MISMATCH",
                            detail=(
                                f"stored type {account.account_type}, "
                                f"code implies {implied.value}"
                            ),
                        )
                    )
            if account.parent_id is not None:
                parent = by_id.get(account.parent_id)
                if parent is None:
                    issues.append(
                        AccountIntegrityIssue(
                            account_id=account.id,
                            account_code=account.code,
                            issue="MISSING_PARENT",
                            detail=f"parent {account.parent_id} does not exist",
                        )
                    )
                elif not is_valid_hierarchy(
                    parent.code, account.code, parent.account_type, account.account_type
                ):
                    issues.append(
                        AccountIntegrityIssue(
                            account_id=account.id,
                            account_code=account.code,
                            issue="INVALID_HIERARCHY",
                            detail=(
                                f"parent {parent.code} ({parent.account_type}) "
                                f"does not admit {account.code} ({account.account_type})"
                            ),
                        )
                    )
        if issues:
            logger.warning(
                "account_integrity_issues_found",
                extra={"issue_count": len(issues)},
            )
        return issues
