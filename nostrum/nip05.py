"""NIP-05 DNS-based identifiers.

* https://nips.nostr.com/5
"""
import logging

from oauth_dropins.webutil import util
from oauth_dropins.webutil.util import HTTP_TIMEOUT

from . import nip19

logger = logging.getLogger(__name__)


class Nip05Error(ValueError):
  """Invalid identifier, invalid response, or user not found."""


def parse(identifier):
  """Splits a NIP-05 identifier into user and domain.

  A bare domain is treated as ``_@domain``.

  Args:
    identifier (str): eg ``alice@example.com``, ``_@example.com``, or
      ``example.com``

  Returns:
    (str user, str domain) tuple

  Raises:
    Nip05Error
  """
  parts = identifier.split('@')
  if len(parts) == 1:
    user = '_'
    domain = parts[0]
  elif len(parts) == 2:
    user, domain = parts
  else:
    raise Nip05Error(f'Invalid NIP-05 identifier: {identifier}')

  if not user or not domain:
    raise Nip05Error(f'Invalid NIP-05 identifier: {identifier}')

  return user, domain


def get_names(domain, user=None):
  """Fetches a domain's ``/.well-known/nostr.json``.

  Args:
    domain (str)
    user (str): optional, passed as the ``name`` query parameter

  Returns:
    dict: maps str name to str hex pubkey

  Raises:
    Nip05Error: if the response isn't a JSON object with ``names``
    requests.HTTPError: if the HTTP request fails
  """
  url = f'https://{domain}/.well-known/nostr.json'
  if user:
    url += f'?name={user}'

  resp = util.requests_get(url, timeout=HTTP_TIMEOUT)
  resp.raise_for_status()

  try:
    data = resp.json()
  except ValueError as e:
    raise Nip05Error(f'{url} returned invalid JSON: {e}') from e

  names = data.get('names') if isinstance(data, dict) else None
  if not isinstance(names, dict):
    raise Nip05Error(f'{url} has no names object')

  return names


def get_nip05(identifier):
  """Resolves a NIP-05 identifier to a hex public key.

  Args:
    identifier (str)

  Returns:
    str: hex pubkey

  Raises:
    Nip05Error: if the identifier is invalid or the user isn't found
    requests.HTTPError: if the HTTP request fails
  """
  user, domain = parse(identifier)

  pubkey = get_names(domain, user=user).get(user)
  if not pubkey or not isinstance(pubkey, str):
    raise Nip05Error(f'User {user} not found at {domain}')

  return pubkey


def verify(identifier, pubkey):
  """Checks that a NIP-05 identifier resolves to a given public key.

  Args:
    identifier (str)
    pubkey (str): hex or bech32 ``npub``

  Returns:
    bool
  """
  try:
    found = get_nip05(identifier)
  except Nip05Error as e:
    logger.info(f"Couldn't resolve {identifier}: {e}")
    return False

  return found.lower() == nip19.to_hex(pubkey, expected='npub')
