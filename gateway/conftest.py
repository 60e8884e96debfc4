from gateway.tests.fixtures_clients import *  # noqa
