"""Unit tests for pow.py."""
from concurrent.futures import ThreadPoolExecutor
import threading
import time

from oauth_dropins.webutil import testutil, util

from .. import pow
from ..event import KIND_NOTE, UnsignedEvent
from ..pow import leading_zero_bits

PUBKEY = '79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798'


class PowTest(testutil.TestCase):

  def setUp(self):
    super().setUp()
    self.mox.stubs.Set(util, 'now', lambda **kwargs: testutil.NOW)

  def test_leading_zero_bits(self):
    self.assertEqual(36, leading_zero_bits(bytes.fromhex(
      '000000000e9d97a1ab09fc381030b346cdd7a142ad57e6df0b46dc9bef6c7e2d')))
    self.assertEqual(0, leading_zero_bits(b''))
    self.assertEqual(0, leading_zero_bits(b'\xff\x00'))
    self.assertEqual(7, leading_zero_bits(b'\x01\x00'))
    self.assertEqual(16, leading_zero_bits(b'\x00\x00'))
    self.assertEqual(11, leading_zero_bits(b'\x00\x10\x00'))

  def test_difficulty_of(self):
    self.assertEqual(36, pow.difficulty_of(
      '000000000e9d97a1ab09fc381030b346cdd7a142ad57e6df0b46dc9bef6c7e2d'))
    self.assertEqual(0, pow.difficulty_of('f' * 64))

  def test_mine_zero_difficulty(self):
    unsigned = UnsignedEvent(PUBKEY, KIND_NOTE, 'x', [['t', 'y']], created_at=0)
    self.assertIs(unsigned, pow.mine(unsigned, 0))
    self.assertEqual([['t', 'y']], unsigned.tags)
    self.assertEqual(0, unsigned.created_at)

  def test_mine_negative_difficulty(self):
    with self.assertRaises(ValueError):
      pow.mine(UnsignedEvent(PUBKEY, KIND_NOTE), -1)

  def test_mine(self):
    for difficulty in 1, 4, 8, 12:
      with self.subTest(difficulty=difficulty):
        unsigned = UnsignedEvent(PUBKEY, KIND_NOTE, 'x', [['t', 'y']])
        self.assertIs(unsigned, unsigned.mine(difficulty))

        self.assertGreaterEqual(pow.difficulty_of(unsigned.id()), difficulty)
        self.assertEqual(['t', 'y'], unsigned.tags[0])
        self.assertEqual(2, len(unsigned.tags))

        name, nonce, target = unsigned.tags[1]
        self.assertEqual('nonce', name)
        self.assertGreater(int(nonce), 0)
        self.assertEqual(str(difficulty), target)
        self.assertEqual(difficulty, pow.committed_difficulty(unsigned))

  def test_committed_difficulty_none(self):
    self.assertIsNone(pow.committed_difficulty(UnsignedEvent(PUBKEY, KIND_NOTE)))
    self.assertIsNone(pow.committed_difficulty(
      UnsignedEvent(PUBKEY, KIND_NOTE, tags=[['nonce', '1', 'x']])))

  def test_mine_in_background(self):
    unsigned = UnsignedEvent(PUBKEY, KIND_NOTE, 'background')
    mined = pow.mine_in_background(unsigned, 8).result(timeout=60)
    self.assertGreaterEqual(pow.difficulty_of(mined.id()), 8)

  def test_mine_in_background_executor(self):
    with ThreadPoolExecutor(max_workers=2) as executor:
      futures = [pow.mine_in_background(UnsignedEvent(PUBKEY, KIND_NOTE, str(i)),
                                        6, executor=executor)
                 for i in range(2)]
      for future in futures:
        self.assertGreaterEqual(pow.difficulty_of(future.result().id()), 6)

  def test_mine_in_background_creates_one_shared_executor(self):
    created = []

    class SlowExecutor(ThreadPoolExecutor):
      def __init__(self, **kwargs):
        created.append(self)
        time.sleep(.05)
        super().__init__(**kwargs)

    self.mox.stubs.Set(pow, '_executor', None)
    self.mox.stubs.Set(pow, 'ThreadPoolExecutor', SlowExecutor)

    futures = []
    def mine(i):
      futures.append(pow.mine_in_background(
        UnsignedEvent(PUBKEY, KIND_NOTE, str(i)), 1))

    threads = [threading.Thread(target=mine, args=(i,)) for i in range(4)]
    try:
      for thread in threads:
        thread.start()
      for thread in threads:
        thread.join()

      self.assertEqual(1, len(created))
      self.assertEqual(4, len(futures))
      for future in futures:
        self.assertGreaterEqual(pow.difficulty_of(future.result(timeout=60).id()), 1)
    finally:
      for executor in created:
        executor.shutdown()
