import pytest
import toy_lmc
from lmc_programs import ECHO

from lmc_cli import config
from lmc_cli.machine.engine import Engine
from lmc_cli.services import Services

FIXED_TIME = "2024-01-01T00:00:00+00:00"


def fixed_clock():
    return FIXED_TIME


@pytest.fixture
def workspace(tmp_path):
    return tmp_path / "workspace"


@pytest.fixture
def cfg(workspace):
    return config.from_workspace(workspace, engine="toy_lmc")


@pytest.fixture
def services(cfg):
    return Services(cfg, engine=Engine(toy_lmc), clock=fixed_clock)


@pytest.fixture
def echo(services):
    """The echo program, stored as `echo'"""
    program = services.assemble(ECHO, "echo")
    services.artifacts.store_program("echo", program, ECHO)
    return program
