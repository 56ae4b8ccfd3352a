"""Property-based tests for webhook signature verification.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

import string

from hypothesis import given, settings, strategies as st

from src.bugbridge.webhook.signature import compute_signature, verify_signature


# HMAC pads short keys with NUL bytes, so keys differing only by trailing
# NULs sign identically; keep them out of generated secrets.
secrets = st.text(
    alphabet=string.ascii_letters + string.digits + string.punctuation,
    min_size=1,
    max_size=64,
)
bodies = st.binary(max_size=4096)


class TestSignatureProperties:
    """Property tests for HMAC-SHA256 signature checks."""

    @given(body=bodies, secret=secrets)
    @settings(max_examples=100)
    def test_computed_signature_verifies(self, body: bytes, secret: str) -> None:
        """Property 1: a body signed with the secret always verifies."""
        assert verify_signature(body, compute_signature(body, secret), secret)

    @given(body=st.binary(min_size=1, max_size=4096), secret=secrets, data=st.data())
    @settings(max_examples=100)
    def test_body_bit_flip_fails(self, body: bytes, secret: str, data) -> None:
        """Property 2: flipping any single bit of the body breaks the signature."""
        bit = data.draw(st.integers(min_value=0, max_value=len(body) * 8 - 1))
        mutated = bytearray(body)
        mutated[bit // 8] ^= 1 << (bit % 8)

        signature = compute_signature(body, secret)
        assert not verify_signature(bytes(mutated), signature, secret)

    @given(body=bodies, secret=secrets, data=st.data())
    @settings(max_examples=100)
    def test_signature_bit_flip_fails(self, body: bytes, secret: str, data) -> None:
        """Property 3: flipping any single bit of the signature is rejected."""
        signature = compute_signature(body, secret)
        index = data.draw(st.integers(min_value=0, max_value=len(signature) - 1))
        bit = data.draw(st.integers(min_value=0, max_value=6))
        flipped = chr(ord(signature[index]) ^ (1 << bit))
        mutated = signature[:index] + flipped + signature[index + 1:]

        assert not verify_signature(body, mutated, secret)

    @given(body=bodies, secret=secrets, other=secrets)
    @settings(max_examples=100)
    def test_other_secret_fails(self, body: bytes, secret: str, other: str) -> None:
        """Property 4: a signature made with another secret is rejected."""
        if other == secret:
            return
        assert not verify_signature(body, compute_signature(body, other), secret)


class TestSignatureEdgeCases:
    """Unit tests for signature header edge cases."""

    def test_github_documented_example(self) -> None:
        signature = compute_signature(b"Hello, World!", "It's a Secret to Everybody")
        assert signature == (
            "sha256=757107ea0eb2509fc211221cce984b8a37570b6d7586c22c46f4379c8b043e17"
        )

    def test_missing_header_fails(self) -> None:
        assert not verify_signature(b"{}", None, "secret")
        assert not verify_signature(b"{}", "", "secret")

    def test_unconfigured_secret_fails(self) -> None:
        signature = compute_signature(b"{}", "secret")
        assert not verify_signature(b"{}", signature, "")
        assert not verify_signature(b"{}", signature, None)

    def test_missing_prefix_fails(self) -> None:
        signature = compute_signature(b"{}", "secret")
        assert not verify_signature(b"{}", signature[len("sha256="):], "secret")

    def test_sha1_header_fails(self) -> None:
        assert not verify_signature(b"{}", "sha1=" + "0" * 40, "secret")

    def test_non_ascii_header_fails_without_raising(self) -> None:
        assert not verify_signature(b"{}", "sha256=éé", "secret")
