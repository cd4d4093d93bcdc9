"""ROSA cluster infrastructure."""

from rosa.hcp_vpc import (
    HCPVPCError,
    HCPVPCProvisioner,
    NetworkTopology,
    create_hcp_vpc,
    delete_hcp_vpc,
)

__all__ = [
    'HCPVPCError',
    'HCPVPCProvisioner',
    'NetworkTopology',
    'create_hcp_vpc',
    'delete_hcp_vpc',
]
