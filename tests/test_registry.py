import pytest

from core import registry
from core.models import TokenRegistryEntry

pytestmark = pytest.mark.django_db


def test_lookup_miss_returns_none(make_poll):
	poll = make_poll(id=42)
	assert registry.get_token_address(poll.id, "A") is None


def test_first_writer_wins(make_poll):
	poll = make_poll(id=42)

	entry, created = registry.set_token_address(poll.id, "A", "0xfirst", blockchain="base", coin_name="Doge", coin_symbol="DOGE")
	assert created
	assert entry.key == "42:A"
	assert registry.token_key(42, "A") == "42:A"

	entry, created = registry.set_token_address(poll.id, "A", "0xsecond", blockchain="base", coin_name="Doge", coin_symbol="DOGE")
	assert not created
	assert entry.token_address == "0xfirst"
	assert registry.get_token_address(poll.id, "A") == "0xfirst"
	assert TokenRegistryEntry.objects.count() == 1


def test_options_are_independent(make_poll):
	poll = make_poll(id=7)
	registry.set_token_address(poll.id, "A", "0xa", blockchain="base")
	registry.set_token_address(poll.id, "B", "0xb", blockchain="base")
	assert registry.get_token_address(poll.id, "A") == "0xa"
	assert registry.get_token_address(poll.id, "B") == "0xb"
