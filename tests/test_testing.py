import pytest

from apiexec import RawResponse, RequestDescriptor, TransportError
from apiexec.testing import FakeCredentialSource, InMemoryTransport


@pytest.mark.asyncio
async def test_unconfigured_resource_is_404():
    t = InMemoryTransport()
    resp = await t.send("https://api.test", RequestDescriptor("/nothing"))
    assert resp.status_code == 404  # noqa: PLR2004
    assert "/nothing" in resp.text


@pytest.mark.asyncio
async def test_lookup_is_case_insensitive_and_logged():
    t = InMemoryTransport()
    t.add_response("/Users/1", 200, {"id": 1})
    resp = await t.send("https://api.test", RequestDescriptor("users/1"))
    assert resp.status_code == 200  # noqa: PLR2004
    assert t.was_called("/users/1")
    assert t.was_called_times("/USERS/1", 1)
    assert not t.was_called("/users/2")


@pytest.mark.asyncio
async def test_response_function_and_default():
    t = InMemoryTransport()
    t.set_default_response(204)
    t.add_response_function("/echo", lambda d: RawResponse(200, {}, d.method.encode()))
    assert (await t.send("https://api.test", RequestDescriptor("/echo", method="PUT"))).body == b"PUT"
    assert (await t.send("https://api.test", RequestDescriptor("/other"))).status_code == 204  # noqa: PLR2004


@pytest.mark.asyncio
async def test_sequence_wraps_exceptions():
    t = InMemoryTransport()
    t.add_sequence("/x", [OSError("reset")])
    with pytest.raises(TransportError):
        await t.send("https://api.test", RequestDescriptor("/x"))
    with pytest.raises(ValueError):
        t.add_response("", 200)


@pytest.mark.asyncio
async def test_fake_credentials_record_acquisitions():
    source = FakeCredentialSource()
    source.set_token("api://a", "a-token")
    cred = await source.get_credential()
    assert (await cred.get_token(["api://a/.default"])).token == "a-token"
    assert (await cred.get_token(["api://b/.default"])).token == "fake-test-token-2"
    assert source.acquisitions_for("api://a") == 1
