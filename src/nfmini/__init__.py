"""
nfmini - minimal iptables/ip6tables manager.

Opens ports on a default-deny INPUT chain and manages NAT PREROUTING
port redirections ("hops") for both IPv4 and IPv6.
"""

__version__ = "1.0.0"
