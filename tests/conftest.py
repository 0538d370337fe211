import pytest

from vps_provisioner.config import ProvisioningConfig
from vps_provisioner.simulation import SimulatedHost


@pytest.fixture
def config() -> ProvisioningConfig:
    return ProvisioningConfig(
        app_user="ltsfuel",
        db_name="ltsfuel_db",
        db_user="ltsfueluser",
        db_password="LtsFuel2025!",
    )


@pytest.fixture
def host() -> SimulatedHost:
    return SimulatedHost.fresh_ubuntu()
