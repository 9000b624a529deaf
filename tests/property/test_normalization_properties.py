from __future__ import annotations

import string
from urllib.parse import parse_qsl, urlencode, urlparse

from hypothesis import given, settings
from hypothesis import strategies as st

from src.utils.text_cleaner import lowered_words
from src.utils.url_canonicalizer import TRACKING_PARAMS, canonicalize

NOISE_PARAMS = ["utm_source", "utm_campaign", "fbclid", "gclid", "ref", "spm", "amp"]
REAL_PARAMS = ["id", "page", "week", "team"]

_slug = st.text(alphabet=string.ascii_lowercase + string.digits, min_size=1, max_size=8)
_host_name = st.text(alphabet=string.ascii_lowercase, min_size=3, max_size=10).filter(
    lambda name: name not in {"www", "amp"}
)


@st.composite
def url_variants(draw):
    """Return ``(clean, noisy)`` spellings of the same article address."""

    host = f"{draw(_host_name)}.{draw(st.sampled_from(['com', 'net', 'org']))}"
    path = "/" + "/".join(draw(st.lists(_slug, min_size=1, max_size=3)))
    params = draw(st.lists(st.tuples(st.sampled_from(REAL_PARAMS), _slug), max_size=3))
    clean = f"https://{host}{path}"
    if params:
        clean += "?" + urlencode(sorted(params))

    noise = draw(st.lists(st.tuples(st.sampled_from(NOISE_PARAMS), _slug), max_size=3))
    mixed = draw(st.permutations(params + noise))
    scheme = draw(st.sampled_from(["https://", "http://", "HTTPS://", ""]))
    prefix = draw(st.sampled_from(["", "www.", "m.", "WWW."]))
    port = draw(st.sampled_from(["", ":80", ":443"]))
    tail = draw(st.sampled_from(["", "/", "/amp", "/amp/"]))
    noisy = f"{scheme}{prefix}{host}{port}{path}{tail}"
    if mixed:
        noisy += "?" + urlencode(mixed)
    noisy += draw(st.sampled_from(["", "#comments", "#top"]))
    padding = draw(st.sampled_from(["", " ", "\n"]))
    return clean, f"{padding}{noisy}{padding}"


@given(url_variants())
@settings(max_examples=150)
def test_noisy_spelling_shares_identity_with_clean_one(variants) -> None:
    clean, noisy = variants
    expected = canonicalize(clean)
    result = canonicalize(noisy)
    assert result.parsed and expected.parsed
    assert result.canonical == expected.canonical
    assert result.domain == expected.domain


@given(url_variants())
@settings(max_examples=120)
def test_identity_key_is_stable_and_stripped(variants) -> None:
    result = canonicalize(variants[1])
    assert canonicalize(result.canonical).canonical == result.canonical

    parsed = urlparse(result.canonical)
    assert parsed.scheme == "https"
    assert not parsed.fragment
    assert parsed.path == "/" or not parsed.path.endswith("/")
    pairs = parse_qsl(parsed.query)
    assert pairs == sorted(pairs)
    for key, _ in pairs:
        assert not key.startswith("utm_") and key not in TRACKING_PARAMS


@given(url_variants())
@settings(max_examples=80)
def test_domain_is_the_bare_host_of_the_identity_key(variants) -> None:
    result = canonicalize(variants[1])
    assert result.domain == urlparse(result.canonical).hostname
    assert not result.domain.startswith(("www.", "m."))


@given(
    st.text(alphabet=string.ascii_letters + string.digits + " ", max_size=20).filter(
        lambda raw: raw.strip().lower() != "localhost"
    )
)
@settings(max_examples=80)
def test_hostless_input_falls_back_to_raw_text(raw: str) -> None:
    result = canonicalize(raw)
    assert not result.parsed
    assert result.url == result.canonical == result.domain == raw


@given(st.lists(st.text(alphabet=string.ascii_letters, min_size=1, max_size=8), min_size=1, max_size=6))
@settings(max_examples=80)
def test_lowered_words_keeps_every_word_addressable(words) -> None:
    folded = lowered_words(" - ".join(words))
    assert folded == f" {folded.strip()} "
    assert set(folded) <= set(string.ascii_lowercase + string.digits + " ")
    for word in words:
        assert f" {word.lower()} " in folded
