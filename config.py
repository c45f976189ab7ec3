"""
Rendezvous
Copyright (C) 2024 thiccaxe

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import ipaddress
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

import aiofiles
import tomlkit
import tomlkit.exceptions
import voluptuous.error
from voluptuous import Schema, Required, Optional as SchemaOptional, All, Range, Length

# environment variable -> server.<key>
ENVIRONMENT_OVERRIDES = {
    "PORT": "websocket_port",
    "STUN_PORT": "stun_port",
}


class ConfigurationLoadError(Exception): pass


class Config:
    config: tomlkit.TOMLDocument
    config_opened: bool = False

    def __init__(self, config_location: Path, environ: Optional[Mapping[str, str]] = None):
        self.config_location = config_location
        self.environ = os.environ if environ is None else environ

        self.config_schema = Schema({
            Required('server'): {
                Required('name'): All(str, Length(min=1)),
                Required('websocket_host'): str,
                Required('websocket_port'): All(int, Range(min=0, max=65535)),
                Required('stun_host'): str,
                Required('stun_port'): All(int, Range(min=0, max=65535)),
            },
            SchemaOptional('mdns'): self.mdns_validator,
        })

    @staticmethod
    def address_validator(address: str) -> str:
        try:
            ipaddress.IPv4Address(address)
        except ValueError as e:
            raise voluptuous.error.Invalid(message="Invalid IPv4 address.") from e
        return address

    def mdns_validator(self, mdns: dict) -> dict:
        mdns = Schema({
            Required('enabled'): bool,
            SchemaOptional('address'): All(str, self.address_validator),
        })(mdns)
        if mdns['enabled'] and 'address' not in mdns:
            raise voluptuous.error.Invalid(message="address is required when mdns is enabled", path=['address'])
        return mdns

    def apply_environment_overrides(self):
        for variable, key in ENVIRONMENT_OVERRIDES.items():
            if variable not in self.environ:
                continue
            try:
                value = int(self.environ[variable])
            except ValueError as e:
                logging.warning(f"Environment variable {variable}={self.environ[variable]!r} is not a port number")
                raise ConfigurationLoadError() from e
            logging.debug(f"{variable} overrides server.{key}")
            self.config.setdefault("server", tomlkit.table())
            self.config["server"][key] = value

    async def initialize(self):
        try:
            async with aiofiles.open(self.config_location, 'r') as config_file:
                file_data = await config_file.read()
                self.config = tomlkit.parse(file_data)
                logging.debug("Loaded Configuration without toml format error")
                self.apply_environment_overrides()
                logging.debug("Validating against Schema.")
                self.config_schema(self.config.unwrap())
                self.config_opened = True
                logging.debug("Validated against Schema.")
        except FileNotFoundError as e:
            logging.exception(e)
            logging.warning(
                f"Could not find {self.config_location}. Copy from .example/config.toml to {self.config_location}")
            raise ConfigurationLoadError() from e
        except IOError as e:
            logging.exception(e)
            logging.warning(f"Could not open file {self.config_location}")
            raise ConfigurationLoadError() from e
        except tomlkit.exceptions.ParseError as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} is invalid")
            raise ConfigurationLoadError() from e
        except voluptuous.error.MultipleInvalid as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} does not match expected format")
            logging.warning(f"Issue configuration item: {e.path}")
            raise ConfigurationLoadError() from e

        logging.info(f"Configuration loaded.")
