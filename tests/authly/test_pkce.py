import random

import pytest

import authly as m
from authly import pkce

RFC7636_VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
RFC7636_CHALLENGE = "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_derive_challenge_matches_rfc7636_example():
    assert m.PKCEGenerator().derive_challenge(RFC7636_VERIFIER) == RFC7636_CHALLENGE


def test_derive_challenge_is_deterministic_and_unpadded():
    gen = m.PKCEGenerator()
    verifier = gen.generate_verifier()

    first = gen.derive_challenge(verifier)
    assert first == gen.derive_challenge(verifier)
    assert "=" not in first
    assert len(first) == 43  # 32-byte digest, base64url without padding


def test_generate_verifier_default_length_and_alphabet():
    verifier = m.PKCEGenerator().generate_verifier()

    assert len(verifier) == 43
    assert set(verifier) <= set(pkce.UNRESERVED_ALPHABET)


@pytest.mark.parametrize("length", [43, 64, 128])
def test_generate_verifier_custom_length(length: int):
    assert len(m.PKCEGenerator().generate_verifier(length)) == length


@pytest.mark.parametrize("length", [0, 42, 129])
def test_generate_verifier_rejects_out_of_range_length(length: int):
    with pytest.raises(ValueError):
        m.PKCEGenerator().generate_verifier(length)


def test_two_verifiers_differ():
    gen = m.PKCEGenerator()
    assert gen.generate_verifier() != gen.generate_verifier()


def test_alphabet_is_the_66_unreserved_characters():
    assert len(pkce.UNRESERVED_ALPHABET) == 66
    assert len(set(pkce.UNRESERVED_ALPHABET)) == 66


def test_generate_pair_links_verifier_and_challenge():
    gen = m.PKCEGenerator()
    pair = gen.generate_pair()

    assert isinstance(pair, m.PKCEPair)
    assert pair.code_challenge == gen.derive_challenge(pair.code_verifier)


def test_injected_random_source_is_used():
    a = m.PKCEGenerator(random_source=random.Random(7)).generate_verifier()
    b = m.PKCEGenerator(random_source=random.Random(7)).generate_verifier()
    assert a == b


def test_injected_digest_is_used():
    gen = m.PKCEGenerator(digest=lambda data: b"\x00" * 32)
    assert gen.derive_challenge("anything") == "A" * 43


def test_missing_secure_random_source_is_fatal(monkeypatch: pytest.MonkeyPatch):
    class NoEntropy:
        def getrandbits(self, k: int) -> int:
            raise NotImplementedError("no urandom")

    monkeypatch.setattr(pkce.secrets, "SystemRandom", NoEntropy)

    with pytest.raises(m.ConfigurationError):
        m.PKCEGenerator()
