"""Unit tests for subscription.py."""
from oauth_dropins.webutil import testutil
from oauth_dropins.webutil.util import json_dumps

from ..event import KIND_NOTE, make_event
from ..filters import ReqFilter
from ..keys import Identity
from ..messages import parse_message
from ..subscription import AWAITING, SETTLED, Subscription, SubscriptionPool

ALICE = Identity('00' * 31 + '01')


class SubscriptionTest(testutil.TestCase):

  def setUp(self):
    super().setUp()
    self.sub = Subscription('sub', [ReqFilter(kinds=[1])],
                            relays=['ws://a', 'ws://b'])

  def test_settle(self):
    self.assertEqual({'ws://a': AWAITING, 'ws://b': AWAITING}, self.sub.states)
    self.assertFalse(self.sub.is_settled())

    self.sub.settle('ws://a')
    self.assertTrue(self.sub.is_settled('ws://a'))
    self.assertFalse(self.sub.is_settled('ws://b'))
    self.assertFalse(self.sub.is_settled())
    self.assertEqual(['ws://b'], self.sub.awaiting())

    self.sub.settle('ws://b')
    self.assertTrue(self.sub.is_settled())
    self.assertEqual([], self.sub.awaiting())

  def test_settle_unknown_relay(self):
    self.sub.settle('ws://c')
    self.assertNotIn('ws://c', self.sub.states)
    self.assertFalse(self.sub.is_settled('ws://c'))

  def test_add_relay(self):
    self.sub.settle('ws://a')
    self.sub.add_relay('ws://a')
    self.sub.add_relay('ws://c')
    self.assertEqual({'ws://a': SETTLED, 'ws://b': AWAITING, 'ws://c': AWAITING},
                     self.sub.states)

  def test_frames_dedupe_and_drain(self):
    self.assertTrue(self.sub.add_frame('one'))
    self.assertTrue(self.sub.add_frame('two'))
    self.assertFalse(self.sub.add_frame('one'))

    self.assertEqual(['one', 'two'], self.sub.drain())
    self.assertEqual([], self.sub.drain())
    # still deduped after draining
    self.assertFalse(self.sub.add_frame('two'))

  def test_events(self):
    note = make_event(ALICE, KIND_NOTE, 'hi')
    self.sub.add_frame(json_dumps(['EVENT', 'sub', note.to_json()]))
    self.sub.add_frame(json_dumps(['EVENT', 'sub', {'bad': 'event'}]))
    self.assertEqual([note], self.sub.events())
    self.assertEqual([], self.sub.events())


class SubscriptionPoolTest(testutil.TestCase):

  def setUp(self):
    super().setUp()
    self.pool = SubscriptionPool()
    self.sub = Subscription('sub', [], relays=['ws://a'])
    self.pool.add(self.sub)

  def handle(self, url, msg):
    raw = json_dumps(msg)
    return self.pool.handle(url, raw, parse_message(raw))

  def test_add_get_remove(self):
    self.assertIn('sub', self.pool)
    self.assertEqual(1, len(self.pool))
    self.assertIs(self.sub, self.pool.get('sub'))
    self.assertIs(self.sub, self.pool.remove('sub'))
    self.assertNotIn('sub', self.pool)
    self.assertIsNone(self.pool.get('sub'))
    self.assertIsNone(self.pool.remove('sub'))

  def test_handle_event(self):
    self.assertTrue(self.handle('ws://a', ['EVENT', 'sub', {'id': 'x'}]))
    self.assertEqual([json_dumps(['EVENT', 'sub', {'id': 'x'}])],
                     self.sub.drain())

  def test_handle_eose(self):
    self.assertTrue(self.handle('ws://a', ['EOSE', 'sub']))
    self.assertTrue(self.sub.is_settled('ws://a'))

  def test_handle_ignores_other_messages(self):
    self.assertFalse(self.handle('ws://a', ['EVENT', 'other', {'id': 'x'}]))
    self.assertFalse(self.handle('ws://a', ['EOSE', 'other']))
    self.assertFalse(self.handle('ws://a', ['NOTICE', 'hi']))
    self.assertFalse(self.handle('ws://a', ['OK', 'x', True, '']))
    self.assertFalse(self.pool.handle('ws://a', 'junk', None))

    self.assertEqual([], self.sub.drain())
    self.assertFalse(self.sub.is_settled('ws://a'))
