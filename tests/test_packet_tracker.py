import unittest

from lockcomp.core.packet_tracker import PacketTracker


class TestPacketTracker(unittest.TestCase):
    def setUp(self):
        self.tracker = PacketTracker()

    def record(self, n):
        for _ in range(n):
            self.tracker.record_packet()

    def test_weight_scale(self):
        expected = {0: 1.0, 1: 1.0, 2: 0.5, 3: 0.25, 4: 0.1, 7: 0.1}
        for count, weight in expected.items():
            self.tracker.reset()
            self.record(count)
            self.assertEqual(self.tracker.total_packets_sent, count)
            self.assertEqual(self.tracker.get_rtt_weight(), weight)

    def test_window_empties_after_fifty_ms(self):
        self.record(3)
        self.tracker.update(0.05)
        self.assertEqual(self.tracker.total_packets_sent, 0)
        self.assertEqual(self.tracker.get_rtt_weight(), 1.0)

    def test_window_empties_with_per_frame_updates(self):
        self.record(2)
        for _ in range(5):
            self.tracker.update(0.01)
        self.assertEqual(self.tracker.total_packets_sent, 0)

    def test_partial_aging_keeps_recent_packets(self):
        self.record(2)
        self.tracker.update(0.02)
        self.assertEqual(self.tracker.total_packets_sent, 2)

        self.record(1)
        self.assertEqual(self.tracker.total_packets_sent, 3)

        # The first slot ages out, the newer packet stays
        self.tracker.update(0.03)
        self.assertEqual(self.tracker.total_packets_sent, 1)

    def test_sub_slot_update_does_not_rotate(self):
        self.record(1)
        self.tracker.update(0.009)
        self.record(1)
        self.assertEqual(self.tracker.total_packets_sent, 2)

    def test_payload_is_accepted(self):
        self.tracker.record_packet(b"\x01\x02")
        self.assertEqual(self.tracker.total_packets_sent, 1)

    def test_reset(self):
        self.record(4)
        self.tracker.update(0.005)
        self.tracker.reset()
        self.assertEqual(self.tracker.total_packets_sent, 0)

if __name__ == '__main__':
    unittest.main()
