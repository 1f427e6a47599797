"""Translation of passthrough ``docker run`` flags into Docker SDK arguments.

Deployments historically accepted extra flags as a string appended to a
``docker run`` command line. The runtime binding talks to the Docker API
directly, so the supported subset of flags is mapped onto the keyword
arguments of ``client.containers.run()``.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from typing import Any

from dotenv import dotenv_values

from cutover.lib.errors import ConfigError

_FIELD = "extra_run_arguments"


def _split_pair(value: str, sep: str, flag: str) -> tuple[str, str]:
    key, found, rest = value.partition(sep)
    if not found or not key:
        raise ConfigError(_FIELD, f"Expected KEY{sep}VALUE for {flag}, got '{value}'")
    return key, rest


def _env(kwargs: dict[str, Any], value: str, flag: str) -> None:
    env = kwargs.setdefault("environment", {})
    if "=" in value:
        key, val = _split_pair(value, "=", flag)
        env[key] = val
    else:
        # Bare name: docker copies the variable from the caller's environment
        if value in os.environ:
            env[value] = os.environ[value]


def _env_file(kwargs: dict[str, Any], value: str, flag: str) -> None:
    env = kwargs.setdefault("environment", {})
    for key, val in dotenv_values(value).items():
        if val is not None:
            env[key] = val


def _volume(kwargs: dict[str, Any], value: str, flag: str) -> None:
    if ":" not in value:
        raise ConfigError(_FIELD, f"Expected SRC:DST[:MODE] for {flag}, got '{value}'")
    kwargs.setdefault("volumes", []).append(value)


def _publish(kwargs: dict[str, Any], value: str, flag: str) -> None:
    parts = value.split(":")
    if len(parts) != 2:
        raise ConfigError(_FIELD, f"Expected HOST:CONTAINER for {flag}, got '{value}'")
    host, container = parts
    proto = "tcp"
    if "/" in container:
        container, proto = container.split("/", 1)
    try:
        host_port = int(host)
        container_port = int(container)
    except ValueError as e:
        raise ConfigError(_FIELD, f"Invalid port mapping for {flag}: '{value}'") from e
    kwargs.setdefault("ports", {})[f"{container_port}/{proto}"] = host_port


def _label(kwargs: dict[str, Any], value: str, flag: str) -> None:
    key, _, val = value.partition("=")
    if not key:
        raise ConfigError(_FIELD, f"Empty label for {flag}")
    kwargs.setdefault("labels", {})[key] = val


def _add_host(kwargs: dict[str, Any], value: str, flag: str) -> None:
    host, ip = _split_pair(value, ":", flag)
    kwargs.setdefault("extra_hosts", {})[host] = ip


def _cpus(kwargs: dict[str, Any], value: str, flag: str) -> None:
    try:
        kwargs["nano_cpus"] = int(float(value) * 1_000_000_000)
    except ValueError as e:
        raise ConfigError(_FIELD, f"Invalid value for {flag}: '{value}'") from e


def _log_driver(kwargs: dict[str, Any], value: str, flag: str) -> None:
    kwargs.setdefault("log_config", {"Type": value, "Config": {}})["Type"] = value


def _log_opt(kwargs: dict[str, Any], value: str, flag: str) -> None:
    key, val = _split_pair(value, "=", flag)
    log_config = kwargs.setdefault("log_config", {"Type": "json-file", "Config": {}})
    log_config["Config"][key] = val


def _scalar(key: str) -> Callable[[dict[str, Any], str, str], None]:
    def apply(kwargs: dict[str, Any], value: str, flag: str) -> None:
        kwargs[key] = value

    return apply


def _append(key: str) -> Callable[[dict[str, Any], str, str], None]:
    def apply(kwargs: dict[str, Any], value: str, flag: str) -> None:
        kwargs.setdefault(key, []).append(value)

    return apply


VALUE_FLAGS: dict[str, Callable[[dict[str, Any], str, str], None]] = {
    "-e": _env,
    "--env": _env,
    "--env-file": _env_file,
    "-v": _volume,
    "--volume": _volume,
    "-p": _publish,
    "--publish": _publish,
    "-l": _label,
    "--label": _label,
    "--add-host": _add_host,
    "--cpus": _cpus,
    "--log-driver": _log_driver,
    "--log-opt": _log_opt,
    "--network": _scalar("network"),
    "--net": _scalar("network"),
    "-m": _scalar("mem_limit"),
    "--memory": _scalar("mem_limit"),
    "--shm-size": _scalar("shm_size"),
    "-u": _scalar("user"),
    "--user": _scalar("user"),
    "-w": _scalar("working_dir"),
    "--workdir": _scalar("working_dir"),
    "-h": _scalar("hostname"),
    "--hostname": _scalar("hostname"),
    "--entrypoint": _scalar("entrypoint"),
    "--stop-signal": _scalar("stop_signal"),
    "--cap-add": _append("cap_add"),
    "--cap-drop": _append("cap_drop"),
    "--dns": _append("dns"),
    "--device": _append("devices"),
    "--group-add": _append("group_add"),
    "--security-opt": _append("security_opt"),
}

BOOLEAN_FLAGS: dict[str, str] = {
    "--privileged": "privileged",
    "--read-only": "read_only",
    "--init": "init",
    "-t": "tty",
    "--tty": "tty",
    "-i": "stdin_open",
    "--interactive": "stdin_open",
}


def translate_run_arguments(args: Sequence[str]) -> dict[str, Any]:
    """Map ``docker run`` flags to ``containers.run()`` keyword arguments.

    Args:
        args: Flags as they would appear on a ``docker run`` command line

    Returns:
        Keyword arguments for the Docker SDK

    Raises:
        ConfigError: If a flag is unsupported, lacks a value, or is malformed

    Example:
        >>> translate_run_arguments(["-e", "MODE=prod", "--network=web"])
        {'environment': {'MODE': 'prod'}, 'network': 'web'}
    """
    kwargs: dict[str, Any] = {}
    tokens = list(args)
    index = 0

    while index < len(tokens):
        token = tokens[index]
        index += 1

        flag, has_inline, inline_value = token.partition("=")
        if not flag.startswith("-"):
            raise ConfigError(
                _FIELD,
                f"Unexpected positional argument '{token}'. "
                "Only flags may be passed through to the container runtime.",
            )

        if flag in BOOLEAN_FLAGS:
            if has_inline:
                kwargs[BOOLEAN_FLAGS[flag]] = inline_value.lower() in ("true", "1")
            else:
                kwargs[BOOLEAN_FLAGS[flag]] = True
            continue

        handler = VALUE_FLAGS.get(flag)
        if handler is None:
            raise ConfigError(_FIELD, f"Unsupported docker run flag: {flag}")

        if has_inline:
            value = inline_value
        else:
            if index >= len(tokens):
                raise ConfigError(_FIELD, f"Flag {flag} requires a value")
            value = tokens[index]
            index += 1

        handler(kwargs, value, flag)

    return kwargs
