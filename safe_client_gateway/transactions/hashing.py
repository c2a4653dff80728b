"""
EIP-712 hashes used by Safe contracts.

The layout mirrors ``Safe.getTransactionHash`` and
``CompatibilityFallbackHandler.getMessageHashForSafe``, so every hash returned here
must be bit-exact with the contracts for the Safe version provided.
"""

from typing import Any, Union

from eth_abi import encode as encode_abi
from eth_abi.exceptions import EncodingError
from eth_account.messages import defunct_hash_message
from hexbytes import HexBytes
from packaging.version import InvalidVersion, Version
from safe_eth.eth.constants import NULL_ADDRESS
from safe_eth.eth.eip712 import eip712_encode_hash
from safe_eth.eth.utils import fast_keccak, fast_keccak_text, fast_to_checksum_address
from safe_eth.safe import SafeTx

from .entities import BaseMultisigTransaction, Safe

# Safes >= 1.3.0 include `chainId` in the domain separator
CHAIN_ID_DOMAIN_VERSION = Version("1.3.0")

DOMAIN_WITH_CHAIN_ID_TYPEHASH = fast_keccak_text(
    "EIP712Domain(uint256 chainId,address verifyingContract)"
)
DOMAIN_TYPEHASH = fast_keccak_text("EIP712Domain(address verifyingContract)")
SAFE_MESSAGE_TYPEHASH = fast_keccak_text("SafeMessage(bytes message)")


class SafeHashException(Exception):
    pass


class CannotCalculateSafeTxHash(SafeHashException):
    pass


class CannotCalculateSafeMessageHash(SafeHashException):
    pass


def get_safe_version(safe: Safe) -> Version:
    """
    :param safe:
    :return: Parsed version of the Safe
    :raises ValueError: if the Safe has no version or it cannot be parsed
    """
    if not safe.version:
        raise ValueError(f"Safe={safe.address} version is required")
    try:
        return Version(safe.version)
    except InvalidVersion as exc:
        raise ValueError(f"Safe version={safe.version} is not valid") from exc


def get_domain_separator(chain_id: Union[int, str], safe: Safe) -> bytes:
    safe_address = fast_to_checksum_address(safe.address)
    if get_safe_version(safe) >= CHAIN_ID_DOMAIN_VERSION:
        return fast_keccak(
            encode_abi(
                ["bytes32", "uint256", "address"],
                [DOMAIN_WITH_CHAIN_ID_TYPEHASH, int(chain_id), safe_address],
            )
        )
    return fast_keccak(
        encode_abi(["bytes32", "address"], [DOMAIN_TYPEHASH, safe_address])
    )


def _to_data_bytes(data: Union[str, bytes, None]) -> bytes:
    # Transfer of funds has no data
    if not data:
        return b""
    if isinstance(data, str) and len(data.removeprefix("0x")) % 2:
        raise ValueError(f"data={data} has an odd length")
    return bytes(HexBytes(data))


def _to_uint(name: str, value: Union[int, str, None]) -> int:
    if value is None:
        raise ValueError(f"{name} is required")
    uint = int(value)
    if uint < 0:
        raise ValueError(f"{name}={value} cannot be negative")
    if uint >= 2**256:
        raise ValueError(f"{name}={value} does not fit in uint256")
    return uint


def _hash_typed_struct(domain_separator: bytes, struct_hash: bytes) -> HexBytes:
    return HexBytes(fast_keccak(b"\x19\x01" + domain_separator + struct_hash))


def hashes_match(
    calculated_hash: bytes, provided_hash: Union[str, bytes, None]
) -> bool:
    """
    :return: ``True`` if ``provided_hash`` is the same as ``calculated_hash``. Hashes that
        cannot be decoded never match
    """
    if not provided_hash:
        return False
    try:
        return HexBytes(calculated_hash) == HexBytes(provided_hash)
    except ValueError:
        return False


def get_safe_tx_hash(
    chain_id: Union[int, str], safe: Safe, transaction: BaseMultisigTransaction
) -> HexBytes:
    """
    Calculates the ``safeTxHash`` of ``transaction`` the same way the Safe contract does

    :param chain_id:
    :param safe: Address and version are used for the domain separator and struct layout
    :param transaction:
    :return: safeTxHash
    :raises CannotCalculateSafeTxHash: if any of the fields is malformed
    """
    try:
        safe_tx = SafeTx(
            None,
            fast_to_checksum_address(safe.address),
            fast_to_checksum_address(transaction.to),
            _to_uint("value", transaction.value),
            _to_data_bytes(transaction.data),
            _to_uint("operation", transaction.operation),
            _to_uint("safe_tx_gas", transaction.safe_tx_gas),
            _to_uint("base_gas", transaction.base_gas),
            _to_uint("gas_price", transaction.gas_price),
            transaction.gas_token or NULL_ADDRESS,
            transaction.refund_receiver or NULL_ADDRESS,
            safe_nonce=_to_uint("nonce", transaction.nonce),
            safe_version=str(get_safe_version(safe)),
            chain_id=int(chain_id),
        )
        return HexBytes(safe_tx.safe_tx_hash)
    except (ValueError, TypeError, EncodingError) as exc:
        raise CannotCalculateSafeTxHash(str(exc)) from exc


def get_message_hash(message: Union[str, dict[str, Any]]) -> HexBytes:
    """
    :param message: Text message or EIP-712 typed data
    :return: EIP-191 hash for strings, EIP-712 hash for typed data
    """
    if isinstance(message, str):
        return HexBytes(defunct_hash_message(text=message))
    return HexBytes(eip712_encode_hash(message))


def get_safe_message_hash(
    chain_id: Union[int, str], safe: Safe, message: Union[str, dict[str, Any]]
) -> HexBytes:
    """
    :param chain_id:
    :param safe:
    :param message: Text message or EIP-712 typed data
    :return: Hash that owners must sign for a Safe off-chain message
    :raises CannotCalculateSafeMessageHash:
    """
    try:
        message_hash = get_message_hash(message)
        struct_hash = fast_keccak(
            encode_abi(
                ["bytes32", "bytes32"],
                [SAFE_MESSAGE_TYPEHASH, fast_keccak(bytes(message_hash))],
            )
        )
        return _hash_typed_struct(get_domain_separator(chain_id, safe), struct_hash)
    except (ValueError, TypeError, KeyError, AttributeError, EncodingError) as exc:
        raise CannotCalculateSafeMessageHash(str(exc)) from exc
