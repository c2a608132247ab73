from advisor_router.proxy.forwarder import ProxyForwarder, ProxyRequest, RemoteProbeRequest, RemoteProbeResult

__all__ = ["ProxyForwarder", "ProxyRequest", "RemoteProbeRequest", "RemoteProbeResult"]
