from typing import Optional
from urllib.parse import quote, urlsplit, urlunsplit

import requests


def proxy_url_with_auth(proxy_address: str, username: Optional[str] = None,
                        password: Optional[str] = None) -> str:
    """Embed ``username:password`` into a proxy URL, as ``requests`` expects."""
    if not username:
        return proxy_address
    parts = urlsplit(proxy_address)
    netloc = parts.netloc.rsplit("@", 1)[-1]
    userinfo = f"{quote(username, safe='')}:{quote(password or '', safe='')}"
    return urlunsplit((parts.scheme, f"{userinfo}@{netloc}", parts.path, parts.query, parts.fragment))


class ProxyTester:
    """
    A class to test HTTP and HTTPS requests through a proxy server.

    Attributes:
    ----------
    proxies : dict
        The ``requests`` proxy mapping used for every request.
    timeout : float
        Seconds to wait for each request.

    Methods:
    -------
    send_http(url: str):
        Sends an HTTP request to the specified URL through the proxy server.

    send_https(url: str):
        Sends an HTTPS request (tunneled with CONNECT) through the proxy server.

    check(url: str):
        Sends a request and reports the outcome as a dict instead of raising.
    """

    def __init__(self, proxy_address, username=None, password=None, timeout=10.0):
        """
        Initializes the ProxyTester with the provided proxy address.

        Parameters:
        ----------
        proxy_address : str
            The address of the proxy server, e.g. ``http://127.0.0.1:8080``.
        username, password : str, optional
            The proxy credential, if the proxy requires one.
        timeout : float
            Seconds to wait for each request.
        """
        proxy = proxy_url_with_auth(proxy_address, username, password)
        self.proxies = {
            "http": proxy,
            "https": proxy,
        }
        self.timeout = timeout
        self.session = requests.Session()
        self.session.trust_env = False

    def send_http(self, url, **kwargs):
        """
        Sends an HTTP request to the specified URL through the proxy server.

        Returns:
        -------
        requests.Response
            The response, whatever its status code.
        """
        return self.session.get(url, proxies=self.proxies, timeout=self.timeout, **kwargs)

    def send_https(self, url, **kwargs):
        """
        Sends an HTTPS request to the specified URL through the proxy server.

        Raises:
        ------
        requests.exceptions.ProxyError
            The proxy refused the CONNECT (for instance with 407).
        """
        return self.session.get(url, proxies=self.proxies, timeout=self.timeout, **kwargs)

    def check(self, url):
        """Request ``url`` through the proxy and summarise the result."""
        send = self.send_https if url.lower().startswith("https://") else self.send_http
        try:
            response = send(url)
        except requests.RequestException as e:
            return {"url": url, "ok": False, "status": None, "error": str(e),
                    "elapsed_ms": None}
        return {
            "url": url,
            "ok": response.ok,
            "status": response.status_code,
            "error": None if response.ok else response.reason,
            "elapsed_ms": response.elapsed.total_seconds() * 1000,
        }

    def close(self):
        self.session.close()
