from .datagram_socket import DatagramSocket as DatagramSocket
from .send_request import SendRequest as SendRequest
from .udp_protocol import UDPProtocol as UDPProtocol
