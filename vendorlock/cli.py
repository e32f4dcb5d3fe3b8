#!/usr/bin/env python3

import click

from vendorlock.commands.generate import generate_handler
from vendorlock.commands.config import config_cmd


@click.group()
@click.version_option(package_name='vendorlock')
def cli():
    """vendorlock - Offline-source manifests from dependency lock files.

    Enumerates every archive, checksum and git checkout a build would
    fetch, so a network-isolated sandbox can build from a vendor tree.
    """
    pass


cli.add_command(generate_handler, name='generate')
cli.add_command(config_cmd)


def main():
    cli()

if __name__ == "__main__":
    main()
