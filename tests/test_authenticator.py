import base64
import dataclasses
import json

import jwt
import pytest

from shclink.errors import (
    AuthenticationFailure,
    InvalidRequest,
    InvalidSignature,
    MethodMismatch,
    MissingSignature,
    StaleRequest,
    TokenBindingMismatch,
    UnknownToken,
    UriMismatch,
)
from shclink.gnap.authenticator import RequestAuthenticator
from shclink.gnap.keys import access_token_hash
from shclink.gnap.signing import DETACHED_JWS_HEADER, sign_jws_attached
from shclink.gnap.types import AccessType, RARItem, SignedRequest
from shclink.tokenstore.store import AccessTokenStore

pytestmark = pytest.mark.asyncio


def b64d(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def b64e(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def flip_signature_bit(jws: str, bit: int = 0) -> str:
    header, payload, signature = jws.split(".")
    raw = bytearray(b64d(signature))
    raw[bit // 8] ^= 1 << (bit % 8)
    return ".".join([header, payload, b64e(bytes(raw))])


def tamper_header(jws: str, **changes) -> str:
    header, payload, signature = jws.split(".")
    fields = json.loads(b64d(header))
    fields.update(changes)
    return ".".join([b64e(json.dumps(fields).encode()), payload, signature])


def tamper_payload(jws: str, **changes) -> str:
    header, payload, signature = jws.split(".")
    body = json.loads(b64d(payload))
    body.update(changes)
    return ".".join([header, b64e(json.dumps(body).encode()), signature])


def with_detached(request: SignedRequest, jws: str) -> SignedRequest:
    return dataclasses.replace(request, headers={**request.headers, DETACHED_JWS_HEADER: jws})


def with_body(request: SignedRequest, jws: str) -> SignedRequest:
    return dataclasses.replace(request, body=jws.encode("ascii"))


def gnap_url(config):
    return config.gnap_endpoint


def data_url(config, client, name="x.json"):
    return f"{config.namespace_root}/{client.key_id}/pkg/data/{name}"


async def issue_token(store, client, location):
    return await store.save(
        [RARItem(type=AccessType.READ.value, locations=(location,))],
        [],
        client.identity,
    )


async def test_valid_bootstrap_request_authenticates(config, make_client):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    client = make_client("a")
    request = client.request("POST", gnap_url(config), body=client.transaction(["shclink-initialize"]))

    auth = await authenticator.authenticate(request)

    assert auth.client.key_id == client.key_id
    assert auth.access_token is None
    assert auth.payload["access_token"]["access"] == ["shclink-initialize"]
    assert auth.header["htm"] == "POST"


async def test_identity_is_thumbprint_not_declared_kid(config, make_client):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    client = make_client("a")
    body = client.transaction(["shclink-initialize"])
    body["client"]["key"]["jwk"]["kid"] = "someone-else"
    request = client.request("POST", gnap_url(config), body=body)

    auth = await authenticator.authenticate(request)

    assert auth.client.key_id == client.key_id
    assert auth.client.key_id != "someone-else"


async def test_detached_get_with_token(config, make_client):
    store = AccessTokenStore(config)
    authenticator = RequestAuthenticator(store, config)
    client = make_client("b")
    url = data_url(config, client)
    token = await issue_token(store, client, url)

    request = client.request("GET", url, access_token=token.value)
    auth = await authenticator.authenticate(request)

    assert request.body is None
    assert auth.access_token is token
    assert auth.token_valid is True
    assert auth.token_value == token.value
    assert auth.header["ath"] == access_token_hash(token.value)


async def test_expired_token_still_authenticates_but_is_flagged(config, clock, make_client):
    store = AccessTokenStore(config)
    authenticator = RequestAuthenticator(store, config)
    client = make_client("b")
    url = data_url(config, client)
    token = await issue_token(store, client, url)

    clock.advance(config.token_ttl + 1)
    auth = await authenticator.authenticate(client.request("GET", url, access_token=token.value))

    assert auth.access_token is token
    assert auth.token_valid is False


@pytest.mark.parametrize("bit", [0, 7, 100, 511])
async def test_flipped_signature_bit_fails(config, make_client, bit):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    client = make_client()
    request = client.request("POST", gnap_url(config), body=client.transaction(["shclink-initialize"]))

    tampered = with_body(request, flip_signature_bit(request.body.decode(), bit))

    with pytest.raises(InvalidSignature):
        await authenticator.authenticate(tampered)


async def test_tampered_payload_fails(config, make_client):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    client = make_client()
    request = client.request("POST", gnap_url(config), body=client.transaction(["shclink-initialize"]))

    tampered = tamper_payload(request.body.decode(), access_token={"access": ["some-link"]})

    with pytest.raises(InvalidSignature):
        await authenticator.authenticate(with_body(request, tampered))


@pytest.mark.parametrize(
    "changes",
    [
        {"htm": "PUT"},
        {"uri": "https://elsewhere.example.org/gnap"},
        {"created": 1_700_000_001},
    ],
)
async def test_tampered_protected_header_fails(config, make_client, changes):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    client = make_client()
    request = client.request("POST", gnap_url(config), body=client.transaction(["shclink-initialize"]))

    tampered = tamper_header(request.body.decode(), **changes)

    with pytest.raises(InvalidSignature):
        await authenticator.authenticate(with_body(request, tampered))


async def test_method_mismatch(config, make_client):
    store = AccessTokenStore(config)
    authenticator = RequestAuthenticator(store, config)
    client = make_client()
    url = data_url(config, client)
    token = await issue_token(store, client, url)

    signed_for_get = client.request("GET", url, access_token=token.value)
    as_head = dataclasses.replace(signed_for_get, method="HEAD")

    with pytest.raises(MethodMismatch):
        await authenticator.authenticate(as_head)


async def test_uri_mismatch(config, make_client):
    store = AccessTokenStore(config)
    authenticator = RequestAuthenticator(store, config)
    client = make_client()
    url = data_url(config, client)
    token = await issue_token(store, client, url)

    request = client.request("GET", url, access_token=token.value)
    moved = dataclasses.replace(request, url=data_url(config, client, "y.json"))

    with pytest.raises(UriMismatch):
        await authenticator.authenticate(moved)


async def test_freshness_window_edges(config, clock, make_client):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    client = make_client()
    body = client.transaction(["shclink-initialize"])
    now = int(clock())

    at_edge = client.request("POST", gnap_url(config), body=body, created=now - config.freshness_window)
    await authenticator.authenticate(at_edge)

    too_old = client.request("POST", gnap_url(config), body=body, created=now - config.freshness_window - 1)
    with pytest.raises(StaleRequest):
        await authenticator.authenticate(too_old)

    too_new = client.request("POST", gnap_url(config), body=body, created=now + config.freshness_window + 1)
    with pytest.raises(StaleRequest):
        await authenticator.authenticate(too_new)


@pytest.mark.parametrize("created", [float("nan"), float("inf"), float("-inf")])
async def test_non_finite_created_is_stale(config, make_client, created):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    client = make_client()
    jws = sign_jws_attached(
        client.key_pair,
        "POST",
        gnap_url(config),
        payload=client.transaction(["shclink-initialize"]),
        created=created,
    )

    with pytest.raises(StaleRequest):
        await authenticator.authenticate(SignedRequest(method="POST", url=gnap_url(config), body=jws.encode()))


async def test_ath_mismatch(config, clock, make_client):
    store = AccessTokenStore(config)
    authenticator = RequestAuthenticator(store, config)
    client = make_client()
    url = data_url(config, client)
    token = await issue_token(store, client, url)

    jws = sign_jws_attached(client.key_pair, "GET", url, access_token_value=token.value + "x", created=int(clock()))
    request = SignedRequest(
        method="GET",
        url=url,
        headers={"Authorization": f"GNAP {token.value}", DETACHED_JWS_HEADER: jws},
    )

    with pytest.raises(TokenBindingMismatch):
        await authenticator.authenticate(request)


async def test_missing_ath_with_token(config, clock, make_client):
    store = AccessTokenStore(config)
    authenticator = RequestAuthenticator(store, config)
    client = make_client()
    url = data_url(config, client)
    token = await issue_token(store, client, url)

    jws = sign_jws_attached(client.key_pair, "GET", url, created=int(clock()))
    request = SignedRequest(
        method="GET",
        url=url,
        headers={"Authorization": f"GNAP {token.value}", DETACHED_JWS_HEADER: jws},
    )

    with pytest.raises(TokenBindingMismatch):
        await authenticator.authenticate(request)


async def test_missing_signature(config):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)

    with pytest.raises(MissingSignature):
        await authenticator.authenticate(SignedRequest(method="GET", url=gnap_url(config)))
    with pytest.raises(MissingSignature):
        await authenticator.authenticate(SignedRequest(method="POST", url=gnap_url(config), body=b"  "))


async def test_unknown_token_rejected(config, make_client):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    client = make_client()
    url = data_url(config, client)

    with pytest.raises(UnknownToken):
        await authenticator.authenticate(client.request("GET", url, access_token="not-a-token"))


async def test_token_used_by_another_key_rejected(config, make_client):
    store = AccessTokenStore(config)
    authenticator = RequestAuthenticator(store, config)
    owner, thief = make_client("owner"), make_client("thief")
    url = data_url(config, owner)
    token = await issue_token(store, owner, url)

    with pytest.raises(InvalidSignature):
        await authenticator.authenticate(thief.request("GET", url, access_token=token.value))


async def test_wrong_typ_rejected(config, clock, make_client):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    client = make_client()
    body = json.dumps(client.transaction(["shclink-initialize"])).encode()
    jws = jwt.api_jws.encode(
        body,
        client.key_pair.private,
        algorithm="ES256",
        headers={"typ": "JWT", "htm": "POST", "uri": gnap_url(config), "created": int(clock())},
    )

    with pytest.raises(InvalidSignature):
        await authenticator.authenticate(SignedRequest(method="POST", url=gnap_url(config), body=jws.encode()))


async def test_bootstrap_without_client_rejected(config, clock, make_client):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    client = make_client()
    jws = sign_jws_attached(
        client.key_pair, "POST", gnap_url(config), payload={"access_token": {"access": []}}, created=int(clock())
    )

    with pytest.raises(InvalidSignature):
        await authenticator.authenticate(SignedRequest(method="POST", url=gnap_url(config), body=jws.encode()))


async def test_signature_by_other_key_than_declared(config, make_client):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    signer, victim = make_client("signer"), make_client("victim")
    body = signer.transaction(["shclink-initialize"])
    body["client"] = victim.gnap_client()

    with pytest.raises(InvalidSignature):
        await authenticator.authenticate(signer.request("POST", gnap_url(config), body=body))


async def test_non_json_payload_is_invalid_request(config, clock, make_client):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)
    store = authenticator.tokens
    client = make_client()
    url = data_url(config, client)
    token = await issue_token(store, client, url)

    jws = jwt.api_jws.encode(
        b"not json",
        client.key_pair.private,
        algorithm="ES256",
        headers={
            "typ": "gnap-binding+jws",
            "htm": "POST",
            "uri": url,
            "created": int(clock()),
            "ath": access_token_hash(token.value),
        },
    )
    request = SignedRequest(
        method="POST", url=url, headers={"Authorization": f"GNAP {token.value}"}, body=jws.encode()
    )

    with pytest.raises(InvalidRequest):
        await authenticator.authenticate(request)


async def test_failures_are_authentication_failures(config):
    authenticator = RequestAuthenticator(AccessTokenStore(config), config)

    with pytest.raises(AuthenticationFailure) as exc:
        await authenticator.authenticate(SignedRequest(method="POST", url=gnap_url(config), body=b"a.b.c"))
    assert exc.value.to_dict()["reason"] == "invalid_signature"
