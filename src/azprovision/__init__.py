"""azprovision - dependency-ordered Azure VM provisioning

Philosophy:
- Fixed, explicit dependency graph instead of ad-hoc call chaining
- Create-or-update everywhere, so re-runs converge
- No credentials in code and no default passwords
- Fail fast, no partial recovery or rollback

Authenticates with a service principal, then creates a resource group,
storage account, virtual network, public IP, network interface and finally a
virtual machine.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
