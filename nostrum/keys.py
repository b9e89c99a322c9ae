"""Nostr identities: secp256k1 keypairs and BIP-340 Schnorr signatures.

* https://github.com/nostr-protocol/nips/blob/master/01.md
* https://github.com/bitcoin/bips/blob/master/bip-0340.mediawiki

Public keys on the wire are 32-byte x-only keys, hex-encoded. secp256k1-py
generates and expects 33-byte compressed keys, so we strip the leading 0x02 or
0x03 byte when we serialize and add 0x02 back when we load one. BIP-340 defines
an x-only key as the point with even y, which is exactly what 0x02 selects.
"""
import logging
import re
import secrets

import secp256k1

from . import nip19

logger = logging.getLogger(__name__)

# secp256k1 field size and group order
P = 0xfffffffffffffffffffffffffffffffffffffffffffffffffffffffefffffc2f
N = 0xfffffffffffffffffffffffffffffffebaaedce6af48a03bbfd25e8cd0364141

HEX_64_RE = re.compile(r'^[0-9a-f]{64}$')
HEX_128_RE = re.compile(r'^[0-9a-f]{128}$')


class InvalidSecretKey(ValueError):
  """The secret key is malformed hex/bech32 or outside 1..N-1."""


class VerificationError(ValueError):
  """Base class for event verification failures."""


class MalformedSignature(VerificationError):
  """``sig`` isn't 128 lower case hex characters."""


class MalformedKey(VerificationError):
  """``pubkey`` isn't the x coordinate of a point on the curve."""


class SignatureInvalid(VerificationError):
  """The signature doesn't verify against the id and pubkey."""


class IdMismatch(VerificationError):
  """The event's ``id`` isn't the hash of its canonical serialization."""


def parse_secret_key(secret):
  """Parses a hex or bech32 ``nsec`` secret key.

  Args:
    secret (str): hex, ``nsec1...`` or ``nostr:nsec1...``

  Returns:
    bytes: 32-byte secret scalar

  Raises:
    InvalidSecretKey
  """
  if not isinstance(secret, str):
    raise InvalidSecretKey(f'Expected str secret key, got {type(secret)}')

  secret = secret.strip().removeprefix('nostr:')
  if secret.startswith('nsec'):
    try:
      prefix, data = nip19.decode(secret)
    except nip19.Bech32Error as e:
      raise InvalidSecretKey(str(e)) from e
    secret = data.hex()

  secret = secret.lower()
  if not HEX_64_RE.match(secret):
    raise InvalidSecretKey('Secret key must be 64 hex characters')

  data = bytes.fromhex(secret)
  if not 0 < int.from_bytes(data, 'big') < N:
    raise InvalidSecretKey('Secret key is out of range')

  return data


def public_key(secret_key):
  """Derives the x-only public key for a secret key.

  Args:
    secret_key (bytes): 32-byte secret scalar

  Returns:
    str: 64-character hex x-only public key
  """
  privkey = secp256k1.PrivateKey(secret_key, raw=True)
  pubkey = privkey.pubkey.serialize(compressed=True)[1:].hex()
  assert len(pubkey) == 64
  return pubkey


def is_valid_public_key(pubkey):
  """Returns True if ``pubkey`` is a hex x coordinate of a curve point.

  This is BIP-340's ``lift_x``: x must be below the field size and x^3 + 7 must
  be a quadratic residue.

  Args:
    pubkey (str): hex

  Returns:
    bool
  """
  if not isinstance(pubkey, str) or not HEX_64_RE.match(pubkey):
    return False

  x = int(pubkey, 16)
  if x >= P:
    return False

  y_squared = (pow(x, 3, P) + 7) % P
  return y_squared == 0 or pow(y_squared, (P - 1) // 2, P) == 1


def sign(identity, event_id):
  """Signs an event id with an identity's secret key.

  Args:
    identity (Identity)
    event_id (str): 64-character hex sha256 digest

  Returns:
    str: 128-character hex BIP-340 Schnorr signature
  """
  assert HEX_64_RE.match(event_id), event_id
  key = secp256k1.PrivateKey(identity.secret_key, raw=True)
  return key.schnorr_sign(bytes.fromhex(event_id), None, raw=True).hex()


def verify_signature(pubkey, event_id, sig):
  """Checks a Schnorr signature over an event id.

  Args:
    pubkey (str): hex x-only public key
    event_id (str): hex sha256 digest
    sig (str): hex signature

  Raises:
    MalformedSignature
    MalformedKey
    SignatureInvalid
  """
  if not isinstance(sig, str) or not HEX_128_RE.match(sig):
    raise MalformedSignature(f'Expected 128 hex characters, got {sig!r}')

  if not is_valid_public_key(pubkey):
    raise MalformedKey(f'Not a secp256k1 x-only public key: {pubkey!r}')

  key = secp256k1.PublicKey(bytes.fromhex('02' + pubkey), raw=True)
  if not key.schnorr_verify(bytes.fromhex(event_id), bytes.fromhex(sig), None,
                            raw=True):
    raise SignatureInvalid(f'Signature does not verify for {event_id}')


class Identity:
  """A Nostr keypair. Immutable.

  Attributes:
    secret_key (bytes): 32-byte secret scalar
    public_key (secp256k1.PublicKey): curve point
    public_key_hex (str): hex compressed public key, 66 characters, includes the
      parity prefix byte
    pubkey (str): hex x-only public key, 64 characters. This is the form used in
      events' ``pubkey`` fields and in filters.
  """
  __slots__ = ('secret_key', 'public_key', 'public_key_hex', 'pubkey')

  def __init__(self, secret_key):
    """Constructor.

    Args:
      secret_key (bytes or str): 32 raw bytes, hex, or bech32 ``nsec``

    Raises:
      InvalidSecretKey
    """
    if isinstance(secret_key, bytes):
      secret_key = secret_key.hex()
    secret_key = parse_secret_key(secret_key)

    privkey = secp256k1.PrivateKey(secret_key, raw=True)
    serialized = privkey.pubkey.serialize(compressed=True)

    object.__setattr__(self, 'secret_key', secret_key)
    object.__setattr__(self, 'public_key', privkey.pubkey)
    object.__setattr__(self, 'public_key_hex', serialized.hex())
    object.__setattr__(self, 'pubkey', serialized[1:].hex())

  def __setattr__(self, name, value):
    raise AttributeError(f'{self.__class__.__name__} is immutable')

  def __delattr__(self, name):
    raise AttributeError(f'{self.__class__.__name__} is immutable')

  def __repr__(self):
    # never include the secret key
    return f'Identity(pubkey={self.pubkey!r})'

  def __eq__(self, other):
    return isinstance(other, Identity) and other.secret_key == self.secret_key

  def __hash__(self):
    return hash(self.pubkey)

  @classmethod
  def from_str(cls, secret_key):
    """Parses a hex or bech32 ``nsec`` secret key."""
    return cls(secret_key)

  @classmethod
  def generate(cls):
    """Returns a new :class:`Identity` with a random secret key."""
    while True:
      data = secrets.token_bytes(32)
      if 0 < int.from_bytes(data, 'big') < N:
        return cls(data)

  @property
  def secret_key_hex(self):
    return self.secret_key.hex()

  @property
  def npub(self):
    """bech32-encoded public key."""
    return nip19.encode('npub', bytes.fromhex(self.pubkey))

  @property
  def nsec(self):
    """bech32-encoded secret key."""
    return nip19.encode('nsec', self.secret_key)
