"""NIP-01 ``REQ`` filters.

* https://github.com/nostr-protocol/nips/blob/master/01.md#communication-between-clients-and-relays

All of a filter's fields are optional. The ones that are set are ANDed; a
subscription's filters are ORed.
"""
import collections

# maps attribute to JSON key
JSON_KEYS = {
  'ids': 'ids',
  'authors': 'authors',
  'kinds': 'kinds',
  'e': '#e',
  'p': '#p',
  'since': 'since',
  'until': 'until',
  'limit': 'limit',
}


class ReqFilter(collections.namedtuple('ReqFilter', list(JSON_KEYS),
                                       defaults=(None,) * len(JSON_KEYS))):
  """A subscription filter.

  Attributes:
    ids (sequence of str): event id hex prefixes
    authors (sequence of str): pubkey hex prefixes
    kinds (sequence of int)
    e (sequence of str): referenced event ids, ``#e``
    p (sequence of str): referenced pubkeys, ``#p``
    since (int): lower bound on ``created_at``, inclusive
    until (int): upper bound on ``created_at``, inclusive
    limit (int): maximum number of stored events to return
  """
  __slots__ = ()

  @classmethod
  def from_json(cls, obj):
    """Parses a filter JSON object. Unknown keys are ignored.

    Args:
      obj (dict)

    Returns:
      ReqFilter
    """
    return cls(**{field: obj[key] for field, key in JSON_KEYS.items()
                  if obj.get(key) is not None})

  def to_json(self):
    """Returns this filter as a JSON object. Unset fields are omitted.

    Returns:
      dict
    """
    return {key: (list(val) if isinstance(val, (list, tuple, set, frozenset))
                  else val)
            for field, key in JSON_KEYS.items()
            if (val := getattr(self, field)) is not None}

  def matches(self, event):
    """Returns True if an event matches this filter.

    ``limit`` is ignored, it only applies to a relay's stored events.

    Args:
      event (event.Event)

    Returns:
      bool
    """
    if self.ids is not None and not any(event.id.startswith(prefix)
                                        for prefix in self.ids):
      return False

    if self.authors is not None and not any(event.pubkey.startswith(prefix)
                                            for prefix in self.authors):
      return False

    if self.kinds is not None and event.kind not in self.kinds:
      return False

    if self.since is not None and event.created_at < self.since:
      return False

    if self.until is not None and event.created_at > self.until:
      return False

    for name in 'e', 'p':
      wanted = getattr(self, name)
      if wanted is not None and not set(event.tag_values(name)) & set(wanted):
        return False

    return True


def matches_any(filters, event):
  """Returns True if ``event`` matches at least one of ``filters``."""
  return any(filter.matches(event) for filter in filters)
