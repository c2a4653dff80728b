import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Union

from eth_typing import ChecksumAddress

from ..clients.transaction_service_repository import (
    TransactionServiceRepositoryProvider,
)
from ..entities import MultisigTransaction, Page, Safe
from ..pagination import (
    PaginationData,
    build_next_page_url,
    build_previous_page_url,
    get_adjusted_pagination_for_queue,
)
from ..repositories import SafeRepository
from .transaction_verifier_service import TransactionVerifier, TransactionVerifierProvider

logger = logging.getLogger(__name__)


class LabelItem(Enum):
    NEXT = "Next"
    QUEUED = "Queued"


class ConflictType(Enum):
    NONE = "None"
    HAS_NEXT = "HasNext"
    END = "End"


@dataclass
class TransactionGroup:
    nonce: int
    transactions: list[MultisigTransaction] = field(default_factory=list)


@dataclass
class LabelQueuedItem:
    label: LabelItem
    type: str = field(default="LABEL", init=False)


@dataclass
class ConflictHeaderQueuedItem:
    nonce: int
    type: str = field(default="CONFLICT_HEADER", init=False)


@dataclass
class TransactionQueuedItem:
    transaction: MultisigTransaction
    conflict_type: ConflictType
    type: str = field(default="TRANSACTION", init=False)


QueuedItem = Union[LabelQueuedItem, ConflictHeaderQueuedItem, TransactionQueuedItem]


def group_by_nonce(transactions: Sequence[MultisigTransaction]) -> list[TransactionGroup]:
    """
    :param transactions:
    :return: Transactions grouped by nonce, keeping the order in which every nonce
        is first found and the order of the transactions inside every group
    """
    groups: dict[int, TransactionGroup] = {}
    for transaction in transactions:
        groups.setdefault(transaction.nonce, TransactionGroup(transaction.nonce))
        groups[transaction.nonce].transactions.append(transaction)
    return list(groups.values())


def get_queued_items(
    groups: Sequence[TransactionGroup],
    safe: Safe,
    previous_page_last_nonce: Optional[int],
    next_page_first_nonce: Optional[int],
) -> list[QueuedItem]:
    """
    Adds labels and conflict headers to the transaction groups.

    :param groups: Transaction groups for the current page
    :param safe:
    :param previous_page_last_nonce: Nonce of the last transaction of the previous page,
        so labels and headers already rendered there are not repeated
    :param next_page_first_nonce: Nonce of the first transaction of the next page, so
        a group split between pages is not marked as finished
    :return: Queued items
    """
    queued_items: list[QueuedItem] = []
    last_processed_nonce = (
        previous_page_last_nonce if previous_page_last_nonce is not None else -1
    )

    for group in groups:
        if last_processed_nonce < safe.nonce and group.nonce == safe.nonce:
            queued_items.append(LabelQueuedItem(LabelItem.NEXT))
        elif last_processed_nonce <= safe.nonce and group.nonce > safe.nonce:
            queued_items.append(LabelQueuedItem(LabelItem.QUEUED))
        last_processed_nonce = group.nonce

        is_edge_group = group.nonce == next_page_first_nonce
        has_conflicts = len(group.transactions) > 1 or is_edge_group
        is_continued_from_previous_page = group.nonce == previous_page_last_nonce

        if has_conflicts and not is_continued_from_previous_page:
            queued_items.append(ConflictHeaderQueuedItem(group.nonce))

        queued_items.extend(
            _get_group_queued_items(
                group, has_conflicts, is_continued_from_previous_page, is_edge_group
            )
        )
    return queued_items


def _get_group_queued_items(
    group: TransactionGroup,
    has_conflicts: bool,
    is_continued_from_previous_page: bool,
    is_edge_group: bool,
) -> list[TransactionQueuedItem]:
    first_transaction, *other_transactions = group.transactions
    if has_conflicts:
        first_conflict_type = ConflictType.HAS_NEXT
    elif is_continued_from_previous_page:
        first_conflict_type = ConflictType.END
    else:
        first_conflict_type = ConflictType.NONE

    queued_items = [TransactionQueuedItem(first_transaction, first_conflict_type)]
    for i, transaction in enumerate(other_transactions, start=1):
        is_last = i == len(group.transactions) - 1
        conflict_type = (
            ConflictType.END if is_last and not is_edge_group else ConflictType.HAS_NEXT
        )
        queued_items.append(TransactionQueuedItem(transaction, conflict_type))
    return queued_items


class QueueServiceProvider:
    def __new__(cls):
        if not hasattr(cls, "instance"):
            cls.instance = QueueService(
                TransactionServiceRepositoryProvider(), TransactionVerifierProvider()
            )
        return cls.instance

    @classmethod
    def del_singleton(cls):
        if hasattr(cls, "instance"):
            del cls.instance


class QueueService:
    def __init__(
        self,
        safe_repository: SafeRepository,
        transaction_verifier: Optional[TransactionVerifier] = None,
    ):
        self.safe_repository = safe_repository
        self.transaction_verifier = transaction_verifier

    async def get_transaction_queue(
        self,
        chain_id: str,
        route_url: str,
        safe_address: ChecksumAddress,
        trusted: Optional[bool] = None,
    ) -> Page[QueuedItem]:
        """
        :param chain_id:
        :param route_url: Url requested by the client, including the cursor
        :param safe_address:
        :param trusted:
        :return: Page of queued items, ``count`` being the number of rendered items.
            One more transaction is requested to the Transaction Service on every side
            of the page, so conflicts split between pages are detected. Those
            transactions are only used as boundaries
        :raises InvalidUpstreamTransaction: if a transaction does not pass verification
        """
        pagination = PaginationData.from_cursor(route_url)
        adjusted_pagination = get_adjusted_pagination_for_queue(pagination)

        safe = await self.safe_repository.get_safe(chain_id, safe_address)
        transactions_page = await self.safe_repository.get_transaction_queue(
            chain_id,
            safe,
            limit=adjusted_pagination.limit,
            offset=adjusted_pagination.offset,
            trusted=trusted,
        )

        if self.transaction_verifier:
            for transaction in transactions_page.results:
                await self.transaction_verifier.verify_api_transaction(
                    chain_id, safe, transaction
                )

        results = list(transactions_page.results)
        next_page_first_nonce: Optional[int] = None
        if transactions_page.next and results:
            # Last transaction belongs to the next page
            next_page_first_nonce = results.pop().nonce

        previous_page_last_nonce: Optional[int] = None
        if pagination.offset > 0 and results:
            previous_page_last_nonce = results[0].nonce

        logger.debug(
            "Queue for safe=%s on chain-id=%s with %d transactions, previous-page-last-nonce=%s next-page-first-nonce=%s",
            safe_address,
            chain_id,
            len(results),
            previous_page_last_nonce,
            next_page_first_nonce,
        )
        queued_items = get_queued_items(
            group_by_nonce(results),
            safe,
            previous_page_last_nonce,
            next_page_first_nonce,
        )
        return Page(
            count=len(queued_items),
            next=build_next_page_url(route_url, transactions_page.count),
            previous=build_previous_page_url(route_url),
            results=queued_items,
        )
