"""Unit tests for recipient formats and key stores."""

from pathlib import Path

import pytest

from envault.errors import InvalidRecipientError, RecipientNotFoundError
from envault.keys.formats import (
    decode_native_public_key,
    detect_scheme,
    encode_native_public_key,
    validate_recipient,
)
from envault.keys.store import FileKeyStore, InMemoryKeyStore
from envault.models import RecipientIdentity, Scheme

FINGERPRINT = "0123456789ABCDEF0123456789ABCDEF01234567"


class TestRecipientFormats:
    """Tests for per-scheme recipient grammars."""

    def test_native_encode_decode(self) -> None:
        """Test a raw key survives encoding to a recipient string."""
        raw = bytes(range(32))
        public_key = encode_native_public_key(raw)
        assert public_key.startswith("envault1")
        assert decode_native_public_key(public_key) == raw

    def test_native_valid(self, alice) -> None:
        """Test a generated public key validates."""
        validate_recipient(alice.public_key, Scheme.NATIVE)

    @pytest.mark.parametrize(
        "public_key",
        [
            "envault1",
            "envault1" + "a" * 51,
            "envault1" + "A" * 52,
            "age1" + "q" * 58,
            " envault1" + "a" * 52,
        ],
    )
    def test_native_invalid(self, public_key: str) -> None:
        """Test malformed native keys are rejected."""
        with pytest.raises(InvalidRecipientError):
            validate_recipient(public_key, Scheme.NATIVE)

    def test_native_non_canonical_rejected(self) -> None:
        """Test stray bits in the last base32 character are rejected."""
        canonical = encode_native_public_key(bytes(32))
        # 'a' is the only canonical final character for an all-zero key; 'b' sets a padding bit
        tampered = canonical[:-1] + "b"
        with pytest.raises(InvalidRecipientError, match="canonical"):
            decode_native_public_key(tampered)

    @pytest.mark.parametrize(
        "public_key",
        [FINGERPRINT, "0x" + FINGERPRINT, "89ABCDEF01234567", "ops@example.com"],
    )
    def test_external_valid(self, public_key: str) -> None:
        """Test fingerprints, long key ids and e-mail addresses are accepted."""
        validate_recipient(public_key, Scheme.EXTERNAL)

    @pytest.mark.parametrize("public_key", ["", "ABCDEF", "not an email", "G" * 40])
    def test_external_invalid(self, public_key: str) -> None:
        """Test other strings are rejected for the external scheme."""
        with pytest.raises(InvalidRecipientError):
            validate_recipient(public_key, Scheme.EXTERNAL)

    def test_detect_scheme(self, alice) -> None:
        """Test the scheme is inferred from the key prefix."""
        assert detect_scheme(alice.public_key) is Scheme.NATIVE
        assert detect_scheme(FINGERPRINT) is Scheme.EXTERNAL


class TestInMemoryKeyStore:
    """Tests for the key store contract (in-memory variant)."""

    def test_add_and_list_keeps_order(self, alice, bob) -> None:
        """Test recipients are listed in insertion order."""
        store = InMemoryKeyStore()
        assert store.add(bob.recipient) is True
        assert store.add(alice.recipient) is True
        assert [r.public_key for r in store.list()] == [bob.public_key, alice.public_key]

    def test_add_stamps_time(self, alice) -> None:
        """Test add records when the recipient was added."""
        store = InMemoryKeyStore()
        store.add(alice.recipient)
        assert store.list()[0].added_at is not None

    def test_duplicate_add_is_idempotent(self, alice) -> None:
        """Test adding the same key twice changes nothing."""
        store = InMemoryKeyStore([alice.recipient])
        relabeled = RecipientIdentity(alice.public_key, Scheme.NATIVE, label="other")
        assert store.add(relabeled) is False
        assert len(store.list()) == 1
        assert store.list()[0].label == "alice"

    def test_add_validates_format(self) -> None:
        """Test an invalid key is rejected at add time."""
        store = InMemoryKeyStore()
        with pytest.raises(InvalidRecipientError):
            store.add(RecipientIdentity("envault1typo", Scheme.NATIVE))
        assert store.list() == []

    def test_remove(self, key_store, alice, bob) -> None:
        """Test remove returns the removed identity."""
        removed = key_store.remove(bob.public_key)
        assert removed.public_key == bob.public_key
        assert [r.public_key for r in key_store.list()] == [alice.public_key]

    def test_remove_non_member(self, key_store, mallory) -> None:
        """Test removing an unknown key raises RecipientNotFoundError."""
        with pytest.raises(RecipientNotFoundError) as exc_info:
            key_store.remove(mallory.public_key)
        assert exc_info.value.public_key == mallory.public_key

    def test_list_for_scheme(self, alice) -> None:
        """Test recipients are filtered by scheme."""
        store = InMemoryKeyStore(
            [alice.recipient, RecipientIdentity(FINGERPRINT, Scheme.EXTERNAL)]
        )
        assert [r.public_key for r in store.list_for(Scheme.NATIVE)] == [alice.public_key]
        assert [r.public_key for r in store.list_for(Scheme.EXTERNAL)] == [FINGERPRINT]

    def test_contains(self, key_store, alice, mallory) -> None:
        """Test membership by public key string."""
        assert alice.public_key in key_store
        assert mallory.public_key not in key_store

    def test_list_returns_copy(self, key_store) -> None:
        """Test callers cannot mutate the store through list()."""
        key_store.list().clear()
        assert len(key_store.list()) == 2


class TestFileKeyStore:
    """Tests for the file-backed key store."""

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        """Test a store without a file lists nothing."""
        assert FileKeyStore(tmp_path / "recipients.txt").list() == []

    def test_persists_with_labels(self, tmp_path: Path, alice) -> None:
        """Test keys and labels are written one per line."""
        path = tmp_path / "recipients.txt"
        store = FileKeyStore(path)
        store.add(alice.recipient)
        store.add(RecipientIdentity(FINGERPRINT, Scheme.EXTERNAL))

        assert path.read_text() == f"{alice.public_key} # alice\n{FINGERPRINT}\n"

        reloaded = FileKeyStore(path).list()
        assert [r.public_key for r in reloaded] == [alice.public_key, FINGERPRINT]
        assert reloaded[0].label == "alice"
        assert reloaded[0].scheme is Scheme.NATIVE
        assert reloaded[1].scheme is Scheme.EXTERNAL

    def test_ignores_comments_and_blanks(self, tmp_path: Path, alice) -> None:
        """Test comment and blank lines are skipped."""
        path = tmp_path / "recipients.txt"
        path.write_text(f"# team keys\n\n{alice.public_key}  #  laptop \n")
        identities = FileKeyStore(path).list()
        assert len(identities) == 1
        assert identities[0].label == "laptop"

    def test_remove_rewrites_file(self, tmp_path: Path, alice, bob) -> None:
        """Test removal persists."""
        path = tmp_path / "recipients.txt"
        store = FileKeyStore(path)
        store.add(alice.recipient)
        store.add(bob.recipient)
        store.remove(alice.public_key)

        assert FileKeyStore(path).list() == [bob.recipient]

    def test_remove_last_leaves_empty_file(self, tmp_path: Path, alice) -> None:
        """Test removing every key leaves an empty file."""
        path = tmp_path / "recipients.txt"
        store = FileKeyStore(path)
        store.add(alice.recipient)
        store.remove(alice.public_key)
        assert path.read_text() == ""

    def test_multiline_label_rejected(self, tmp_path: Path, alice, bob) -> None:
        """Test a label cannot smuggle a second key onto its own line."""
        path = tmp_path / "recipients.txt"
        store = FileKeyStore(path)
        smuggled = RecipientIdentity(alice.public_key, Scheme.NATIVE, label=f"x\n{bob.public_key}")

        with pytest.raises(InvalidRecipientError, match="single line"):
            store.add(smuggled)

        assert store.list() == []
        assert not path.exists()

    @pytest.mark.parametrize("label", ["laptop\r", "a\rb", "a\u2028b", "trailing\n"])
    def test_line_breaks_in_label_rejected(self, tmp_path: Path, alice, label: str) -> None:
        """Test every kind of line break is refused in a label."""
        store = FileKeyStore(tmp_path / "recipients.txt")
        with pytest.raises(InvalidRecipientError):
            store.add(RecipientIdentity(alice.public_key, Scheme.NATIVE, label=label))

    def test_label_with_hash_round_trips(self, tmp_path: Path, alice) -> None:
        """Test a single-line label containing '#' is kept whole."""
        path = tmp_path / "recipients.txt"
        FileKeyStore(path).add(RecipientIdentity(alice.public_key, Scheme.NATIVE, label="ci #2"))
        (identity,) = FileKeyStore(path).list()
        assert identity.label == "ci #2"
