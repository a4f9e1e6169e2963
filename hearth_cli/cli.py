"""
Hearth CLI - Main entry point.

Provides a command-line interface for querying and controlling the Hearth
server over MQTT without running a panel.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from hearth_protocol import MQTTConfig

from .client import HearthCommandClient


def load_yaml_config(config_path: str) -> Dict[str, Any]:
    """
    Load a YAML file holding command parameters.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If YAML is invalid or not a mapping
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Parameters file not found: {config_path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}")

    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must contain a mapping of parameters")
    return data


def parse_params(pairs: List[str]) -> Dict[str, Any]:
    """
    Parse KEY=VALUE pairs. Values are read as YAML scalars, so
    "on=true" gives a boolean and "brightness=120" an integer.
    """
    params: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got '{pair}'")
        params[key] = yaml.safe_load(value)
    return params


def build_command(args: argparse.Namespace) -> Tuple[str, Dict[str, Any]]:
    if args.command == 'rooms':
        return 'environment-rooms', {}

    if args.command == 'services':
        return 'environment-services', {'room': args.room}

    params = load_yaml_config(args.params_file) if args.params_file else {}
    params.update(parse_params(args.param))
    return args.name, params


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Hearth CLI - Send commands to the Hearth server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List rooms
  hearth-cli rooms

  # List the services of a room
  hearth-cli services Office

  # Any command, parameters as KEY=VALUE
  hearth-cli send philips-hue-set-light -p light=3 -p on=true -p brightness=200

  # Parameters from YAML
  hearth-cli send philips-hue-lights --params-file config/commands/office_lights.yaml
"""
    )

    # Global arguments
    parser.add_argument(
        "--config",
        help="Read broker settings from the 'mqtt' section of a server/panel YAML"
    )
    parser.add_argument("--broker", help="MQTT broker host (default: localhost)")
    parser.add_argument("--port", type=int, help="MQTT broker port (default: 1883)")
    parser.add_argument("--site-id", help="Site id of the server (default: home)")
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Seconds to wait for the server and for the reply (default: 10)"
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('rooms', help='List rooms')

    services = subparsers.add_parser('services', help='List the services of a room')
    services.add_argument('room', help='Room name')

    send = subparsers.add_parser('send', help='Send any command')
    send.add_argument('name', help='Command name (e.g. philips-hue-lights)')
    send.add_argument(
        '-p', '--param',
        action='append',
        default=[],
        metavar='KEY=VALUE',
        help='Command parameter (repeatable)'
    )
    send.add_argument('--params-file', help='YAML file with command parameters')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        mqtt_data: Dict[str, Any] = {}
        if args.config:
            mqtt_data.update(load_yaml_config(args.config).get('mqtt') or {})
        for key, value in (('broker', args.broker), ('port', args.port), ('site_id', args.site_id)):
            if value is not None:
                mqtt_data[key] = value

        command, params = build_command(args)

        client = HearthCommandClient(MQTTConfig.from_dict(mqtt_data))
        result = client.send_command(command, params, timeout=args.timeout)

        print(json.dumps(result, indent=2, ensure_ascii=False))

    except Exception as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
