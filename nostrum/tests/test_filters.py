"""Unit tests for filters.py."""
from oauth_dropins.webutil import testutil

from ..event import Event
from ..filters import ReqFilter, matches_any

EVENT = Event(
  id='ab12' + '0' * 60,
  pubkey='cd34' + '0' * 60,
  created_at=1000,
  kind=1,
  tags=(('e', 'ee' * 32), ('p', 'ff' * 32), ('t', 'nostr')),
  content='hi',
  sig='0' * 128,
)


class ReqFilterTest(testutil.TestCase):

  def test_to_json_omits_unset_fields(self):
    self.assertEqual({}, ReqFilter().to_json())
    self.assertEqual({'kinds': [1], '#p': ['ab']},
                     ReqFilter(kinds=[1], p=['ab']).to_json())
    self.assertEqual({
      'ids': ['ab'],
      'authors': ['cd'],
      'kinds': [0, 3],
      '#e': ['ee'],
      '#p': ['ff'],
      'since': 0,
      'until': 5,
      'limit': 0,
    }, ReqFilter(ids=('ab',), authors=['cd'], kinds=(0, 3), e=['ee'], p=['ff'],
                 since=0, until=5, limit=0).to_json())

  def test_from_json(self):
    self.assertEqual(ReqFilter(e=['ee'], limit=5), ReqFilter.from_json({
      '#e': ['ee'],
      'limit': 5,
      'search': 'ignored',
      'since': None,
    }))

  def test_matches(self):
    for filter in (
        ReqFilter(),
        ReqFilter(ids=['ab']),
        ReqFilter(ids=['xx', 'ab12']),
        ReqFilter(authors=['cd34']),
        ReqFilter(kinds=[0, 1]),
        ReqFilter(since=1000, until=1000),
        ReqFilter(e=['ee' * 32]),
        ReqFilter(p=['00', 'ff' * 32]),
        ReqFilter(kinds=[1], authors=['cd'], limit=0),
    ):
      with self.subTest(filter=filter):
        self.assertTrue(filter.matches(EVENT))

  def test_does_not_match(self):
    for filter in (
        ReqFilter(ids=[]),
        ReqFilter(ids=['ab13']),
        ReqFilter(authors=['ab']),
        ReqFilter(kinds=[0]),
        ReqFilter(since=1001),
        ReqFilter(until=999),
        ReqFilter(e=['ff' * 32]),
        ReqFilter(p=['ee' * 32]),
        ReqFilter(kinds=[1], authors=['xx']),
    ):
      with self.subTest(filter=filter):
        self.assertFalse(filter.matches(EVENT))

  def test_matches_any(self):
    self.assertTrue(matches_any([ReqFilter(kinds=[0]), ReqFilter(kinds=[1])],
                                EVENT))
    self.assertFalse(matches_any([ReqFilter(kinds=[0])], EVENT))
    self.assertFalse(matches_any([], EVENT))
