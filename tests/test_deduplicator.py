"""
Tests for ExpiringSet.
"""
from signal_intel.deduplicator import ExpiringSet


class TestExpiringSet:

    def test_check_and_add(self, clock):
        seen = ExpiringSet(60, clock=clock)
        assert seen.check_and_add('base:0x1:accumulation') is True
        assert seen.check_and_add('base:0x1:accumulation') is False
        assert seen.check_and_add('base:0x1:distribution') is True

    def test_entries_expire_on_read(self, clock):
        seen = ExpiringSet(60, clock=clock)
        seen.add('k')
        clock.advance(59)
        assert 'k' in seen
        clock.advance(1)
        assert 'k' not in seen
        assert len(seen) == 0
        assert seen.check_and_add('k') is True

    def test_cleanup_expired(self, clock):
        seen = ExpiringSet(10, clock=clock)
        seen.add('old')
        clock.advance(5)
        seen.add('new')
        clock.advance(6)

        assert seen.cleanup_expired() == 1
        assert 'new' in seen
        assert seen.get_stats()['currently_tracked'] == 1
