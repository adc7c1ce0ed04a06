import pytest

from certpin.endpoint import Endpoint


@pytest.mark.parametrize(
    "value, host, port, key",
    [
        ("127.0.0.1:4433", "127.0.0.1", 4433, "127.0.0.1:4433"),
        ("LocalHost", "localhost", 4433, "localhost:4433"),
        ("[::1]:9000", "::1", 9000, "[::1]:9000"),
        ("https://Example.org:4443/wt", "example.org", 4443, "example.org:4443"),
        ("https://example.org", "example.org", 443, "example.org:443"),
    ],
)
def test_parse(value, host, port, key):
    ep = Endpoint.parse(value)
    assert ep.host == host
    assert ep.port == port
    assert ep.key == key


def test_url_form_keeps_path():
    ep = Endpoint.parse("https://127.0.0.1:4433/chat")
    assert ep.path == "/chat"
    assert ep.url() == "https://127.0.0.1:4433/chat"
    assert str(ep) == ep.url()
    assert str(Endpoint.parse("127.0.0.1:4433")) == "127.0.0.1:4433"


@pytest.mark.parametrize("value", ["", "   ", "https:///nohost", "host:notaport"])
def test_parse_rejects_invalid(value):
    with pytest.raises(ValueError):
        Endpoint.parse(value)
