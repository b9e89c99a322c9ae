"""NIP-11 relay information documents.

* https://nips.nostr.com/11
"""
import logging

import requests
from oauth_dropins.webutil import util
from oauth_dropins.webutil.util import HTTP_TIMEOUT

logger = logging.getLogger(__name__)

ACCEPT = 'application/nostr+json'

FIELDS = (
  'name',
  'description',
  'pubkey',
  'contact',
  'supported_nips',
  'software',
  'version',
)


class Nip11Error(ValueError):
  """The relay information document is missing or invalid."""


def http_url(relay_url):
  """Converts a ``ws://`` or ``wss://`` relay URL to ``http://`` or ``https://``."""
  return relay_url.replace('ws', 'http', 1)


def get_relay_information_document(relay_url):
  """Fetches a relay's information document.

  Args:
    relay_url (str): ``ws://`` or ``wss://``

  Returns:
    dict: the known fields in :const:`FIELDS` that the relay provided

  Raises:
    Nip11Error
  """
  url = http_url(relay_url)
  try:
    resp = util.requests_get(url, headers={'Accept': ACCEPT},
                             timeout=HTTP_TIMEOUT)
    resp.raise_for_status()
  except requests.RequestException as e:
    raise Nip11Error(f'{url} is not accessible: {e}') from e

  try:
    data = resp.json()
  except ValueError as e:
    raise Nip11Error(f'{url} returned invalid JSON: {e}') from e

  if not isinstance(data, dict):
    raise Nip11Error(f'{url} returned {type(data).__name__}, not an object')

  return {field: data[field] for field in FIELDS if field in data}


def supports_nip(relay_url, nip):
  """Returns True if a relay's information document lists a NIP.

  Relays whose documents can't be fetched are treated as not supporting it.

  Args:
    relay_url (str)
    nip (int)

  Returns:
    bool
  """
  try:
    info = get_relay_information_document(relay_url)
  except Nip11Error as e:
    logger.info(e)
    return False

  supported = info.get('supported_nips')
  return isinstance(supported, list) and nip in supported
