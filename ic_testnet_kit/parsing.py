from ipaddress import ip_address
from typing import Iterable, List, Tuple, Union

from .errors import InvalidConfig

def split_host_port(host_port: str) -> Tuple[str, int]:
    split = host_port.split(':')
    if len(split) != 2 or len(split[0]) == 0:
        raise InvalidConfig("Invalid address %s, should be host:port" % host_port)

    try:
        port = int(split[1])
    except ValueError:
        raise InvalidConfig("Invalid port in address %s" % host_port)

    if port < 1 or port > 65535:
        raise InvalidConfig("Port %d of address %s is out of range" % (port, host_port))

    return split[0], port

def port_from_host_port(host_port: str) -> int:
    return split_host_port(host_port)[1]

def ipv4_from_host_port(host_port: str) -> str:
    """Returns the host part of the address, which must be a literal IPv4 address"""

    host, _ = split_host_port(host_port)
    try:
        address = ip_address(host)
    except ValueError:
        raise InvalidConfig("Address %s is not a literal IP address" % host_port)
    if address.version != 4:
        raise InvalidConfig("Address %s is not an IPv4 address" % host_port)
    return host

def parse_address_list(addresses: Union[str, Iterable[str]]) -> List[str]:
    """Parses space-separated (or already split) host:port tuples

    The result is in the order given, validated and free of duplicates.
    """

    if isinstance(addresses, str):
        addresses = addresses.split()

    result: List[str] = []
    for address in addresses:
        address = address.strip()
        split_host_port(address)
        if address in result:
            raise InvalidConfig("Address %s is listed more than once" % address)
        result.append(address)

    return result
