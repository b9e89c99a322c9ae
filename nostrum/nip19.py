"""NIP-19 bech32-encoded entities and NIP-21 ``nostr:`` URIs.

* https://nips.nostr.com/19
* https://nips.nostr.com/21
"""
import re

import bech32

PREFIXES = (
  'naddr',
  'nevent',
  'note',
  'nprofile',
  'npub',
  'nrelay',
  'nsec',
)
# bech32-encoded ids with these prefix are always TLV
TLV_PREFIXES = (
  'naddr',
  'nevent',
  'nprofile',
  'nrelay',
)
PATTERN = f'(?P<prefix>{"|".join(PREFIXES)})1[a-z0-9]{{50,}}'
BECH32_RE = re.compile('^' + PATTERN + '$')
URI_RE = re.compile(r'\bnostr:' + PATTERN + r'\b')


class Bech32Error(ValueError):
  """Invalid bech32 string, or the wrong kind of entity."""


def is_bech32(val):
  if not val:
    return False

  val = val.removeprefix('nostr:')
  return any(val.startswith(prefix) for prefix in PREFIXES)


def encode(prefix, data):
  """Encodes raw bytes as bech32.

  Args:
    prefix (str): human readable part, eg ``npub``
    data (bytes)

  Returns:
    str: bech32
  """
  if prefix in TLV_PREFIXES:
    assert prefix in ('nprofile', 'nevent'), prefix
    assert len(data) == 32, data
    # first byte 0 for id/pubkey, second byte 32 for length
    data = b'\x00\x20' + data

  return bech32.bech32_encode(prefix, bech32.convertbits(data, 8, 5))


def decode(val):
  """Decodes a bech32 string.

  TLV entities (``nprofile``, ``nevent``, etc) return their type 0 value, which
  is the id or pubkey.

  Args:
    val (str): bech32, optionally with a ``nostr:`` prefix

  Returns:
    (str prefix, bytes data) tuple

  Raises:
    Bech32Error
  """
  val = val.removeprefix('nostr:')
  prefix, bits = bech32.bech32_decode(val)
  if prefix is None or bits is None:
    raise Bech32Error(f'Invalid bech32: {val}')

  data = bech32.convertbits(bits, 5, 8, False)
  if data is None:
    raise Bech32Error(f'Invalid bech32 padding: {val}')
  data = bytes(data)

  if prefix in TLV_PREFIXES:
    # TLV! find the type 0 value, it's (usually) the id
    while data:
      if len(data) < 2:
        raise Bech32Error(f'Truncated TLV in {val}')
      type, length = data[:2]
      if type == 0:
        data = data[2:2 + length]
        break
      data = data[length + 2:]

    if not data:
      raise Bech32Error(f'No TLV type 0 value in {val}')

  return prefix, data


def to_hex(val, expected=None):
  """Normalizes a key or id to hex, decoding it first if it's bech32.

  Args:
    val (str): hex or bech32
    expected (str): optional bech32 prefix that ``val`` must have if it's
      bech32, eg ``npub``

  Returns:
    str: hex

  Raises:
    Bech32Error: if ``val`` is bech32 with the wrong prefix, or invalid
  """
  if not is_bech32(val):
    return val.lower()

  prefix, data = decode(val)
  if expected and prefix != expected:
    raise Bech32Error(f'Expected {expected}, got {prefix}')

  return data.hex()


def to_bech32(prefix, hex):
  """Converts a hex key or id to bech32. Leaves bech32 input as is.

  Args:
    prefix (str)
    hex (str)

  Returns:
    str: bech32

  Raises:
    Bech32Error: if ``hex`` is already bech32 with a different prefix
  """
  if is_bech32(hex):
    hex = hex.removeprefix('nostr:')
    if not hex.startswith(prefix):
      raise Bech32Error(f'Expected {prefix}, got {hex}')
    return hex

  if len(hex) != 64:
    raise Bech32Error(f'Expected 64 hex characters, got {hex}')

  return encode(prefix, bytes.fromhex(hex))


def id_to_uri(prefix, id):
  """Converts a hex sha256 hash id to a nostr: URI with bech32-encoded id.

  Args:
    prefix (str)
    id (str): hex

  Returns:
    str: ``nostr:`` URI
  """
  return 'nostr:' + to_bech32(prefix, id.removeprefix('nostr:'))


def uri_to_id(uri):
  """Converts a nostr: URI with bech32-encoded id to a hex id.

  Args:
    uri (str)

  Returns:
    str: hex, or ``uri`` unchanged if it isn't bech32
  """
  if not uri or not is_bech32(uri):
    return uri

  return decode(uri)[1].hex()
