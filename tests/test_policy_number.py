import re
from datetime import datetime, timezone

from utils.policy_number import POLICY_NUMBER_ALPHABET, generate_policy_number

PATTERN = re.compile(r"^GTC-\d{2}-[ABCDEFGHJKLMNPQRSTUVWXYZ23456789]{8}$")


def test_format_and_year():
    n = generate_policy_number(datetime(2026, 7, 1, tzinfo=timezone.utc))
    assert PATTERN.match(n)
    assert n.startswith("GTC-26-")


def test_alphabet_excludes_ambiguous_characters():
    for ch in "01IO":
        assert ch not in POLICY_NUMBER_ALPHABET
    assert len(POLICY_NUMBER_ALPHABET) == 32


def test_collisions_are_rare():
    numbers = {generate_policy_number() for _ in range(10000)}
    # 32^8 possible suffixes; a handful of collisions would indicate a broken generator
    assert len(numbers) >= 9999
    assert all(PATTERN.match(n) for n in numbers)
