import asyncio
import datetime
import ssl

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from dahua.event_channel import Signal
from dahua.exceptions import AuthenticationRequired, StreamHTTPError
from dahua.models import AlarmAction, AlarmEvent, ConnectionTarget
from dahua.stream_session import StreamRequest, StreamSession, build_ssl_context


def _target(host, use_http=True, codes=("VideoMotion",)):
    return ConnectionTarget.create(host, "admin", "pass", use_http, codes)


def test_target_builds_watch_url_in_code_order():
    target = _target("10.0.0.5", use_http=False, codes=["VideoMotion", "VideoLoss", "VideoMotion", "AlarmLocal"])

    assert target.events_watch_path == "/cgi-bin/eventManager.cgi?action=attach&codes=[VideoMotion,VideoLoss,AlarmLocal]"
    assert target.url.startswith("https://10.0.0.5/cgi-bin/")
    assert _target("10.0.0.5").url.startswith("http://10.0.0.5/")
    assert "pass" not in repr(target)


@pytest.mark.parametrize("host,codes", [("", ["VideoMotion"]), ("10.0.0.5", []), ("10.0.0.5", [""])])
def test_target_requires_host_and_event_codes(host, codes):
    with pytest.raises(ValueError):
        _target(host, codes=codes)


def test_request_is_rebuilt_not_mutated():
    request = StreamRequest.for_target(_target("10.0.0.5"))
    authed = request.with_authorization('Digest username="admin"')

    assert request.headers == {"Accept": "multipart/x-mixed-replace"}
    assert authed.headers["Authorization"] == 'Digest username="admin"'
    assert authed.url == request.url


def _self_signed_cert(tmp_path):
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "nvr.local")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    certfile = tmp_path / "nvr.crt"
    keyfile = tmp_path / "nvr.key"
    certfile.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    keyfile.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
    )
    return certfile, keyfile


def test_ssl_context_skips_verification():
    ctx = build_ssl_context("TLSv1.2")
    assert ctx.verify_mode == ssl.CERT_NONE
    assert ctx.check_hostname is False
    assert ctx.minimum_version == ssl.TLSVersion.TLSv1_2

    with pytest.raises(ValueError):
        build_ssl_context("SSLv3")


@pytest.mark.asyncio
@pytest.mark.skipif(not ssl.HAS_TLSv1, reason="TLSv1 not compiled into this OpenSSL")
async def test_ssl_context_handshakes_with_tlsv1_only_nvr(tmp_path):
    certfile, keyfile = _self_signed_cert(tmp_path)
    server_ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    server_ctx.load_cert_chain(certfile, keyfile)
    server_ctx.set_ciphers("DEFAULT:@SECLEVEL=0")
    server_ctx.minimum_version = ssl.TLSVersion.TLSv1
    server_ctx.maximum_version = ssl.TLSVersion.TLSv1

    async def handle(reader, writer):
        await reader.read()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0, ssl=server_ctx)
    port = server.sockets[0].getsockname()[1]
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection("127.0.0.1", port, ssl=build_ssl_context("TLSv1")), timeout=5
        )
        try:
            assert writer.get_extra_info("ssl_object").version() == "TLSv1"
        finally:
            writer.close()
            await writer.wait_closed()
    finally:
        server.close()
        await server.wait_closed()


def test_pool_size_must_be_positive(channel):
    with pytest.raises(ValueError):
        StreamSession(_target("10.0.0.5"), channel, pool_size=0)


def test_chunk_publishes_alarm_stamped_with_host(channel):
    session = StreamSession(_target("10.0.0.5", use_http=False), channel)

    alarm = session.handle_chunk(b"Code=VideoMotion;action=Start;index=0\r\n")

    expected = AlarmEvent(event_type="VideoMotion", action=AlarmAction.START, index=0, host="10.0.0.5")
    assert alarm == expected
    assert channel.of(Signal.ALARM) == [expected]
    assert expected.to_dict() == {"eventType": "VideoMotion", "action": "Start", "index": 0, "host": "10.0.0.5"}


def test_chunk_without_record_publishes_no_alarm(channel):
    session = StreamSession(_target("10.0.0.5"), channel)

    assert session.handle_chunk(b"--myboundary\r\nContent-Type: text/plain\r\n") is None
    assert session.handle_chunk(b"\x00\xff;garbage") is None
    assert channel.of(Signal.ALARM) == []
    assert channel.of(Signal.DEBUG)


def test_unknown_action_maps_to_unknown(channel):
    session = StreamSession(_target("10.0.0.5"), channel)
    alarm = session.handle_chunk(b"Code=VideoMotion;action=Blink;index=4")
    assert alarm.action is AlarmAction.UNKNOWN


def test_chunk_without_index_publishes_alarm_with_sentinel_index(channel):
    session = StreamSession(_target("10.0.0.5"), channel)

    alarm = session.handle_chunk(b"Code=VideoMotion;action=Start\r\n")

    expected = AlarmEvent(event_type="VideoMotion", action=AlarmAction.START, index=-999, host="10.0.0.5")
    assert alarm == expected
    assert channel.of(Signal.ALARM) == [expected]


@pytest.mark.asyncio
async def test_open_and_consume_stream(aiohttp_server, fake_nvr, channel):
    server = await aiohttp_server(fake_nvr.app())
    target = _target(f"{server.host}:{server.port}")
    session = StreamSession(target, channel)
    try:
        response = await session.open(StreamRequest.for_target(target))
        await session.consume(response)
    finally:
        await session.close()

    request = fake_nvr.requests[0]
    assert request.raw_path == target.events_watch_path
    assert request.query["action"] == "attach"
    assert request.query["codes"] == "[VideoMotion]"
    assert request.headers["Accept"] == "multipart/x-mixed-replace"
    assert "Authorization" not in request.headers

    [alarm] = channel.of(Signal.ALARM)
    assert alarm.event_type == "VideoMotion"
    assert alarm.host == target.host
    debug = channel.of(Signal.DEBUG)
    assert debug[0] == f"Successfully connected and listening to host: {target.host}"
    assert debug[-1] == f"Socket connection ended on host: {target.host}"


@pytest.mark.asyncio
async def test_open_raises_on_challenge(aiohttp_server, fake_nvr, channel):
    fake_nvr.challenge = 'Digest realm="r",nonce="n",qop="auth"'
    server = await aiohttp_server(fake_nvr.app())
    target = _target(f"{server.host}:{server.port}")
    session = StreamSession(target, channel)
    try:
        with pytest.raises(AuthenticationRequired) as info:
            await session.open(StreamRequest.for_target(target))
    finally:
        await session.close()

    assert info.value.www_authenticate == fake_nvr.challenge


@pytest.mark.asyncio
async def test_open_raises_on_http_error(aiohttp_server, fake_nvr, channel):
    fake_nvr.status = 503
    server = await aiohttp_server(fake_nvr.app())
    target = _target(f"{server.host}:{server.port}")
    session = StreamSession(target, channel)
    try:
        with pytest.raises(StreamHTTPError) as info:
            await session.open(StreamRequest.for_target(target))
    finally:
        await session.close()

    assert info.value.status == 503
    assert channel.of(Signal.ALARM) == []
