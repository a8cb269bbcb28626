"""
EIP-712 Typed Structured Data Hashing

Computes domain separators, struct hashes and signing digests exactly as
Ethereum wallets do for ``eth_signTypedData_v4``, so that a digest built here
is byte-identical to the one an off-line signer signs.

    digest = keccak256(0x19 0x01 || domainSeparator || hashStruct(message))

These standards prevent signature replay across contracts, chains and
scheme versions, and make users see exactly what they are signing.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from eth_utils import is_address, keccak, to_bytes, to_canonical_address, to_checksum_address

EIP712_PREFIX = b"\x19\x01"

TypeDefinitions = Dict[str, List[Dict[str, str]]]


@dataclass(frozen=True)
class TypedDataDomain:
    """
    EIP-712 domain.

    Prevents signature replay across different:
    - Contracts/applications (name, verifyingContract)
    - Chains (chainId)
    - Versions (version)
    """
    name: str
    version: str
    chain_id: int
    verifying_contract: Optional[str] = None
    salt: Optional[bytes] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON domain object used by wallets."""
        d: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
        }
        if self.verifying_contract:
            d["verifyingContract"] = to_checksum_address(self.verifying_contract)
        if self.salt:
            d["salt"] = "0x" + self.salt.hex()
        return d

    def type_fields(self) -> List[Dict[str, str]]:
        """EIP712Domain field list for the fields this domain uses."""
        fields = [
            {"name": "name", "type": "string"},
            {"name": "version", "type": "string"},
            {"name": "chainId", "type": "uint256"},
        ]
        if self.verifying_contract:
            fields.append({"name": "verifyingContract", "type": "address"})
        if self.salt:
            fields.append({"name": "salt", "type": "bytes32"})
        return fields


def _is_array_type(type_name: str) -> Tuple[bool, str, Optional[int]]:
    """
    Check if type is an array type.

    Returns:
        Tuple of (is_array, base_type, array_length or None for dynamic)
    """
    match = re.match(r'^(.+)\[(\d*)\]$', type_name)
    if match:
        base_type = match.group(1)
        length = int(match.group(2)) if match.group(2) else None
        return True, base_type, length
    return False, type_name, None


def _find_type_dependencies(type_name: str, types: TypeDefinitions, found: Optional[set] = None) -> set:
    """Find all struct types referenced by type_name, including itself."""
    if found is None:
        found = set()

    _, base_type, _ = _is_array_type(type_name)
    if base_type in found or base_type not in types:
        return found

    found.add(base_type)
    for field in types[base_type]:
        _find_type_dependencies(field["type"], types, found)

    return found


def encode_type(type_name: str, types: TypeDefinitions) -> str:
    """
    Encode a type string (EIP-712 encodeType).

    The primary type comes first, followed by referenced struct types in
    alphabetical order, e.g.
    ``Mail(Person from,Person to,string contents)Person(string name,address wallet)``.
    """
    if type_name not in types:
        raise ValueError(f"Unknown struct type: {type_name}")

    deps = _find_type_dependencies(type_name, types)
    deps.discard(type_name)

    encoded = ""
    for name in [type_name] + sorted(deps):
        fields = types[name]
        encoded += f"{name}({','.join(f['type'] + ' ' + f['name'] for f in fields)})"
    return encoded


def hash_type(type_name: str, types: TypeDefinitions) -> bytes:
    """Compute typeHash = keccak256(encodeType(type))."""
    return keccak(text=encode_type(type_name, types))


def _as_bytes(value: Union[bytes, str, None]) -> bytes:
    if value is None:
        return b""
    if isinstance(value, str):
        return to_bytes(hexstr=value)
    return bytes(value)


def _encode_value(type_name: str, value: Any, types: TypeDefinitions) -> bytes:
    """Encode a single value to its 32-byte EIP-712 representation."""
    is_array, base_type, length = _is_array_type(type_name)
    if is_array:
        items = list(value or [])
        if length is not None and len(items) != length:
            raise ValueError(f"{type_name} expects {length} items, got {len(items)}")
        return keccak(b"".join(_encode_value(base_type, item, types) for item in items))

    if type_name in types:
        return hash_struct(type_name, value or {}, types)

    if type_name == "string":
        return keccak(text=value or "")
    if type_name == "bytes":
        return keccak(_as_bytes(value))
    if type_name == "bool":
        return (1 if value else 0).to_bytes(32, "big")
    if type_name == "address":
        if not isinstance(value, str) or not is_address(value):
            raise ValueError(f"Invalid address: {value!r}")
        return to_canonical_address(value).rjust(32, b"\x00")
    if type_name.startswith("uint") or type_name.startswith("int"):
        bits_match = re.search(r'\d+$', type_name)
        bits = int(bits_match.group()) if bits_match else 256
        val = int(value or 0)
        if type_name.startswith("uint"):
            if not 0 <= val < (1 << bits):
                raise ValueError(f"Value {val} out of range for {type_name}")
            return val.to_bytes(32, "big")
        if not -(1 << (bits - 1)) <= val < (1 << (bits - 1)):
            raise ValueError(f"Value {val} out of range for {type_name}")
        return val.to_bytes(32, "big", signed=True)
    if type_name.startswith("bytes"):
        size = int(type_name[5:])
        raw = _as_bytes(value)
        if len(raw) > size:
            raise ValueError(f"Value too long for {type_name}")
        return raw.ljust(32, b"\x00")

    raise ValueError(f"Unknown type: {type_name}")


def encode_data(type_name: str, data: Dict[str, Any], types: TypeDefinitions) -> bytes:
    """
    Encode structured data (EIP-712 encodeData).

    Returns typeHash followed by each member encoded to 32 bytes, in the order
    the fields are declared.
    """
    encoded = hash_type(type_name, types)
    for field in types[type_name]:
        if field["name"] not in data:
            raise ValueError(f"Missing field {field['name']!r} for {type_name}")
        encoded += _encode_value(field["type"], data[field["name"]], types)
    return encoded


def hash_struct(type_name: str, data: Dict[str, Any], types: TypeDefinitions) -> bytes:
    """Compute hashStruct(s) = keccak256(encodeData(s))."""
    return keccak(encode_data(type_name, data, types))


def hash_domain(domain: TypedDataDomain) -> bytes:
    """Compute the domain separator for a domain."""
    types = {"EIP712Domain": domain.type_fields()}
    return hash_struct("EIP712Domain", domain.to_dict(), types)


def typed_data_digest(domain_separator: bytes, struct_hash: bytes) -> bytes:
    """Combine a domain separator and struct hash into the signing digest."""
    return keccak(EIP712_PREFIX + domain_separator + struct_hash)


def hash_typed_data(
    domain: TypedDataDomain,
    primary_type: str,
    types: TypeDefinitions,
    message: Dict[str, Any]
) -> bytes:
    """
    Hash typed structured data (EIP-712).

    Args:
        domain: Domain (app name, version, chain, verifying contract)
        primary_type: Name of the primary type being signed
        types: Dictionary of struct type definitions (without EIP712Domain)
        message: The structured data to sign

    Returns:
        32-byte keccak256 digest ready for signing
    """
    return typed_data_digest(hash_domain(domain), hash_struct(primary_type, message, types))


def build_typed_data(
    domain: TypedDataDomain,
    primary_type: str,
    types: TypeDefinitions,
    message: Dict[str, Any]
) -> Dict[str, Any]:
    """Build the full typed data JSON object (eth_signTypedData_v4 payload)."""
    return {
        "types": {"EIP712Domain": domain.type_fields(), **types},
        "primaryType": primary_type,
        "domain": domain.to_dict(),
        "message": message,
    }


def create_typed_sign_request(
    domain: TypedDataDomain,
    primary_type: str,
    types: TypeDefinitions,
    message: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Create a signTypedData request object.

    Compatible with wallet RPC methods (eth_signTypedData_v4).

    Returns:
        Request object with full typed data and digest
    """
    return {
        "method": "eth_signTypedData_v4",
        "params": {
            "typedData": build_typed_data(domain, primary_type, types, message),
            "hash": "0x" + hash_typed_data(domain, primary_type, types, message).hex(),
        }
    }


# ERC721 permit: approval of one token to `spender`, bound to the token's nonce
PERMIT_TYPES: TypeDefinitions = {
    "Permit": [
        {"name": "spender", "type": "address"},
        {"name": "tokenId", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ]
}

PERMIT_TYPEHASH = hash_type("Permit", PERMIT_TYPES)


def permit_domain(name: str, chain_id: int, verifying_contract: str, version: str = "1") -> TypedDataDomain:
    """Domain of a permit-enabled token."""
    return TypedDataDomain(
        name=name,
        version=version,
        chain_id=chain_id,
        verifying_contract=verifying_contract,
    )


def permit_message(spender: str, token_id: int, nonce: int, deadline: int) -> Dict[str, Any]:
    """Permit message with fields in declaration order."""
    return {
        "spender": to_checksum_address(spender),
        "tokenId": int(token_id),
        "nonce": int(nonce),
        "deadline": int(deadline),
    }


def hash_permit(spender: str, token_id: int, nonce: int, deadline: int) -> bytes:
    """hashStruct of a Permit message."""
    return hash_struct("Permit", permit_message(spender, token_id, nonce, deadline), PERMIT_TYPES)


def create_permit_signature_request(
    token_name: str,
    token_address: str,
    chain_id: int,
    spender: str,
    token_id: int,
    nonce: int,
    deadline: int,
) -> Dict[str, Any]:
    """
    Create a token permit signature request (gasless approval).

    Args:
        token_name: Token name for domain
        token_address: Token contract address
        chain_id: Chain ID
        spender: Address to approve
        token_id: Token to approve
        nonce: Token's current nonce
        deadline: Permit deadline timestamp

    Returns:
        Typed sign request for permit
    """
    domain = permit_domain(token_name, chain_id, token_address)
    message = permit_message(spender, token_id, nonce, deadline)
    return create_typed_sign_request(domain, "Permit", PERMIT_TYPES, message)
