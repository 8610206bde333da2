"""
GateNet Proxy Server
License: MIT License
Description: GateNet is a forward HTTP/HTTPS proxy that puts every request
             behind a single shared Basic-Auth credential, tunnels CONNECT
             traffic and forwards plain HTTP with its request line rewritten.
"""

__version__ = "1.0.0"
