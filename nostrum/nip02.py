"""NIP-02 contact lists.

* https://nips.nostr.com/2

Each contact is a ``p`` tag: ``["p", <32-bytes hex key>, <main relay URL>,
<petname>]``. The relay and petname are optional.
"""
import collections

from . import nip19


class Contact(collections.namedtuple('Contact', ['key', 'main_relay', 'petname'],
                                     defaults=(None, None))):
  """One contact list entry.

  Attributes:
    key (str): hex pubkey
    main_relay (str): optional
    petname (str): optional
  """
  __slots__ = ()

  @classmethod
  def from_tag(cls, tag):
    """Parses a ``p`` tag.

    Returns:
      Contact, or None if ``tag`` isn't a ``p`` tag
    """
    if len(tag) < 2 or tag[0] != 'p':
      return None

    return cls(key=tag[1],
               main_relay=tag[2] if len(tag) > 2 else None,
               petname=tag[3] if len(tag) > 3 else None)

  def to_tag(self):
    """Returns this contact as a ``p`` tag.

    A petname without a relay gets an empty relay field.
    """
    tag = ['p', nip19.to_hex(self.key, expected='npub')]
    if self.main_relay is not None:
      tag.append(self.main_relay)
      if self.petname is not None:
        tag.append(self.petname)
    elif self.petname is not None:
      tag.extend(['', self.petname])

    return tag
