"""
NNFW Persistence

Saves a NeuralNet as INI text built from the named-property schema:

    [NET]
    clustersList   = in hid out
    linkersList    = l1 l2
    inputClusters  = in
    outputClusters = out
    spreadOrder    = in l1 hid l2 out

    [hid]
    type       = BiasedCluster
    numNeurons = 4
    accumulate = false
    biases     = 0.25 -0.5 0.125 1.0

    [hid/outFunction]
    type   = SigmoidFunction
    lambda = 1.0

    [l1]
    type    = DotLinker
    from    = in
    to      = hid
    weights = ...          (row-major)

Nested functions (Composite, LinearCombo) get their own sections below the
owner, e.g. `hid/outFunction/first`.  Reals are written with repr() so they
read back exactly.  Entity names must not contain whitespace or '/'.
"""

from __future__ import annotations
import configparser
import dataclasses
import io
import numpy as np
from typing import Any, Dict, List, Optional

from .clusters import Cluster
from .errors import ConfigurationError
from .factory import Factory, default_factory
from .functions import TransferFunction
from .linkers import Linker
from .log import get_logger
from .net import NeuralNet

logger = get_logger(__name__)

NET_SECTION = "NET"
# configparser's defaults section; "/" keeps it clear of every saveable name
DEFAULTS_SECTION = "NET/defaults"


# ---------------------------------------------------------------------------
# Value formatting
# ---------------------------------------------------------------------------

def _fmt(value: Any) -> str:
    if isinstance(value, (bool, np.bool_)):
        return "true" if value else "false"
    if isinstance(value, np.ndarray):
        if value.dtype == bool:
            return " ".join("1" if v else "0" for v in value.ravel())
        return " ".join(repr(float(v)) for v in value.ravel())
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)):
        return repr(float(value))
    return str(value)


def _floats(text: str) -> np.ndarray:
    return np.array([float(t) for t in text.split()], dtype=float)


def _bool(text: str) -> bool:
    t = text.strip().lower()
    if t in ("1", "true", "yes", "on"):
        return True
    if t in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {text!r}")


def _key(field_name: str) -> str:
    # lambda_ → lambda
    return field_name.rstrip("_")


def _check_name(name: str):
    if not name or any(ch.isspace() for ch in name) or "/" in name or name == NET_SECTION:
        raise ConfigurationError(f"name {name!r} cannot be saved")


def _parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser(interpolation=None, default_section=DEFAULTS_SECTION)
    parser.optionxform = str
    return parser


# ---------------------------------------------------------------------------
# Saving
# ---------------------------------------------------------------------------

def net_properties(net: NeuralNet) -> Dict[str, List[str]]:
    """The NET-level part of the schema, as name lists."""
    return {
        "clustersList": [c.name for c in net.clusters],
        "linkersList": [ln.name for ln in net.linkers],
        "inputClusters": [c.name for c in net.input_clusters],
        "outputClusters": [c.name for c in net.output_clusters],
        "spreadOrder": [u.name for u in net.order],
    }


def _write_function(parser: configparser.ConfigParser, section: str, f: TransferFunction):
    parser[section] = {"type": f.type_name}
    for fld in dataclasses.fields(f):
        value = getattr(f, fld.name)
        if isinstance(value, TransferFunction):
            _write_function(parser, f"{section}/{_key(fld.name)}", value)
        else:
            parser[section][_key(fld.name)] = _fmt(value)


def _write_entity(parser: configparser.ConfigParser, props: Dict[str, Any]):
    name = props.pop("name")
    _check_name(name)
    if parser.has_section(name):
        raise ConfigurationError(f"duplicate name {name!r}")
    func = props.pop("outFunction", None)
    parser[name] = {k: _fmt(v) for k, v in props.items()}
    if func is not None:
        _write_function(parser, f"{name}/outFunction", func)


def dumps(net: NeuralNet) -> str:
    """INI text describing `net`."""
    parser = _parser()
    parser[NET_SECTION] = {k: " ".join(v) for k, v in net_properties(net).items()}
    parser[NET_SECTION]["name"] = net.name
    for c in net.clusters:
        _write_entity(parser, c.properties())
    for ln in net.linkers:
        _write_entity(parser, ln.properties())
    buf = io.StringIO()
    parser.write(buf)
    return buf.getvalue()


def save_net(net: NeuralNet, path: str):
    with open(path, "w") as fh:
        fh.write(dumps(net))
    logger.info("saved net %r to %s", net.name, path)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _read_function(parser: configparser.ConfigParser, section: str,
                   factory: Factory) -> TransferFunction:
    sect = parser[section]
    cls = factory.function_class(sect.get("type", ""))
    params: Dict[str, Any] = {}
    for fld in dataclasses.fields(cls):
        key = _key(fld.name)
        nested = f"{section}/{key}"
        type_hint = str(fld.type)
        if "TransferFunction" in type_hint:
            if parser.has_section(nested):
                params[fld.name] = _read_function(parser, nested, factory)
        elif key in sect:
            raw = sect[key]
            if "ndarray" in type_hint:
                params[fld.name] = _floats(raw)
            elif "bool" in type_hint:
                params[fld.name] = _bool(raw)
            elif "int" in type_hint:
                params[fld.name] = int(raw)
            else:
                params[fld.name] = float(raw)
    return factory.create_function(cls.__name__, params)


def _read_cluster(parser, name: str, factory: Factory) -> Cluster:
    if not parser.has_section(name):
        raise ConfigurationError(f"no section for cluster {name!r}")
    sect = parser[name]
    props: Dict[str, Any] = {
        "type": sect.get("type"),
        "name": name,
        "numNeurons": int(sect.get("numNeurons", "0")),
        "accumulate": _bool(sect.get("accumulate", "false")),
    }
    if "biases" in sect:
        props["biases"] = _floats(sect["biases"])
    if "coeff" in sect:
        props["coeff"] = _floats(sect["coeff"])
    if parser.has_section(f"{name}/outFunction"):
        props["outFunction"] = _read_function(parser, f"{name}/outFunction", factory)
    return factory.create_cluster(props)


def _read_linker(parser, name: str, clusters: Dict[str, Cluster], factory: Factory) -> Linker:
    if not parser.has_section(name):
        raise ConfigurationError(f"no section for linker {name!r}")
    sect = parser[name]
    ends = {}
    for end in ("from", "to"):
        cname = sect.get(end)
        if cname not in clusters:
            raise ConfigurationError(f"linker {name!r}: unknown {end} cluster {cname!r}")
        ends[end] = clusters[cname]
    props: Dict[str, Any] = {"type": sect.get("type"), "name": name, **ends}
    if "weights" in sect:
        props["weights"] = _floats(sect["weights"])
    if "mask" in sect:
        props["mask"] = np.array([t != "0" for t in sect["mask"].split()], dtype=bool)
    if "mode" in sect:
        props["mode"] = sect["mode"]
    return factory.create_linker(props)


def loads(text: str, factory: Optional[Factory] = None) -> NeuralNet:
    """Rebuild a NeuralNet from `dumps` output."""
    factory = factory or default_factory()
    parser = _parser()
    try:
        parser.read_string(text)
    except configparser.Error as exc:
        raise ConfigurationError(f"unreadable net description: {exc}") from exc
    if not parser.has_section(NET_SECTION):
        raise ConfigurationError(f"missing [{NET_SECTION}] section")
    top = parser[NET_SECTION]

    try:
        net = NeuralNet(top.get("name", "net"))
        clusters = {}
        for name in top.get("clustersList", "").split():
            clusters[name] = _read_cluster(parser, name, factory)
        inputs = set(top.get("inputClusters", "").split())
        outputs = set(top.get("outputClusters", "").split())
        for name, c in clusters.items():
            net.add_cluster(c, name in inputs, name in outputs)
        for name in top.get("linkersList", "").split():
            net.add_linker(_read_linker(parser, name, clusters, factory))
    except (ValueError, KeyError) as exc:
        raise ConfigurationError(f"bad net description: {exc}") from exc

    order = []
    for name in top.get("spreadOrder", "").split():
        u = net.get_by_name(name)
        if u is None:
            raise ConfigurationError(f"spreadOrder names unknown entity {name!r}")
        order.append(u)
    net.set_order(order)
    return net


def load_net(path: str, factory: Optional[Factory] = None) -> NeuralNet:
    with open(path) as fh:
        net = loads(fh.read(), factory)
    logger.info("loaded net %r from %s", net.name, path)
    return net
