"""Loads tool configuration from YAML or properties files and validates run settings.
"""
import collections
import copy
import os
import sys

import toolz as tz
import yaml

from gatkflow.log import logger


class CmdNotFound(Exception):
    pass

class ConfigurationError(ValueError):
    """Missing or invalid required option, reported before any stage runs.
    """
    pass

# Keys looked up for extra commandline arguments, one per tool invocation
TOOL_NAMES = ("MarkDuplicates", "RealignerTargetCreator", "IndelRealigner",
              "BaseRecalibrator", "PrintReads", "HaplotypeCaller", "GenotypeGVCFs",
              "SNPVariantRecalibrator", "INDELVariantRecalibrator", "ApplyRecalibration")

PipelineConfig = collections.namedtuple("PipelineConfig",
                                        ["ref_file", "known_sites", "cores_per_node", "out_dir",
                                         "work_dir", "tool_args", "resources", "parallel"])

# ## Loading configuration files

def load_config(config_file):
    """Load a tool configuration file, replacing environmental variables.

    YAML files (.yaml, .yml) provide extra arguments as top level strings or
    under `tools`, with optional `resources` and `log_dir` sections. Any other
    file is read as java style properties: `ToolName=extra arguments`.
    """
    if not os.path.exists(config_file):
        raise ConfigurationError("Configuration file not found: %s" % config_file)
    if config_file.endswith((".yaml", ".yml")):
        with open(config_file) as in_handle:
            config = yaml.safe_load(in_handle) or {}
        if not isinstance(config, dict):
            raise ConfigurationError("Expected a mapping in configuration file %s" % config_file)
    else:
        config = _load_properties(config_file)
    config = _expand_paths(config)
    tools = dict(config.get("tools") or {})
    for k, v in config.items():
        if isinstance(v, str) and k != "log_dir":
            tools[k] = v
    resources = {k.lower(): v for k, v in (config.get("resources") or {}).items()}
    for k in tools:
        if k not in TOOL_NAMES:
            logger.warning("Unknown tool in configuration %s: %s" % (config_file, k))
    out = {"tools": tools, "resources": resources}
    if config.get("log_dir"):
        out["log_dir"] = config["log_dir"]
    return out

def _load_properties(config_file):
    out = {}
    with open(config_file) as in_handle:
        for line in (l.strip() for l in in_handle):
            if not line or line.startswith(("#", "!")):
                continue
            if "=" not in line:
                raise ConfigurationError("Could not parse line in %s: %s" % (config_file, line))
            key, val = line.split("=", 1)
            out[key.strip()] = val.strip()
    return out

def _expand_paths(config):
    out = {}
    for field, setting in config.items():
        if isinstance(setting, dict):
            out[field] = _expand_paths(setting)
        else:
            out[field] = expand_path(setting)
    return out

def expand_path(path):
    """ Combines os.path.expandvars with replacing ~ with $HOME.
    """
    try:
        return os.path.expandvars(path.replace("~", "$HOME"))
    except AttributeError:
        return path

# ## Run configuration

def make_config(ref_file, known_sites, cores_per_node, out_dir, tool_config,
                work_dir=None, parallel=None):
    """Validate commandline settings and build the immutable run configuration.
    """
    for name, fname in [("reference", ref_file), ("known sites", known_sites)]:
        if not fname:
            raise ConfigurationError("Missing required %s file" % name)
        if not os.path.exists(fname):
            raise ConfigurationError("Could not find %s file: %s" % (name, fname))
    if not out_dir:
        raise ConfigurationError("Missing required output directory")
    try:
        cores_per_node = int(cores_per_node)
    except (TypeError, ValueError):
        raise ConfigurationError("Cores per node must be an integer: %s" % cores_per_node)
    if cores_per_node < 1:
        raise ConfigurationError("Cores per node must be positive: %s" % cores_per_node)
    if parallel is None:
        parallel = {"type": "local", "cores": 1}
    if parallel.get("type", "local") not in ("local", "multicore"):
        raise ConfigurationError("Unexpected type of parallel run: %s" % parallel["type"])
    work_dir = os.path.abspath(work_dir or os.getcwd())
    return PipelineConfig(ref_file=os.path.abspath(ref_file),
                          known_sites=os.path.abspath(known_sites),
                          cores_per_node=cores_per_node,
                          out_dir=os.path.abspath(out_dir),
                          work_dir=work_dir,
                          tool_args=tuple(sorted((tool_config.get("tools") or {}).items())),
                          resources=copy.deepcopy(tool_config.get("resources") or {}),
                          parallel=dict(parallel))

def get_extra_args(config, tool):
    """Retrieve the extra argument string configured for a tool, or None.
    """
    return dict(config.tool_args).get(tool)

# ## Retrieval functions

def get_resources(name, config):
    """Retrieve resources for a program, falling back to shared defaults.
    """
    resources = getattr(config, "resources", None)
    if resources is None:
        resources = config.get("resources", {})
    return tz.get_in([name], resources, tz.get_in(["default"], resources, {}))

def get_jvm_opts(name, config, default=("-Xms750m", "-Xmx2g")):
    """Java memory options for a program, checking the program then shared java settings.
    """
    for n in [name, "java"]:
        resources = get_resources(n, config)
        opts = resources.get("jvm_opts") if isinstance(resources, dict) else None
        if opts:
            return [str(x) for x in opts]
    return list(default)

def get_program(name, config, default=None):
    """Retrieve the commandline of a program from the configuration.

    Checks configured `cmd` entries, then the directory of the running python
    (conda installs) and finally the PATH.
    """
    pconfig = get_resources(name, config)
    if isinstance(pconfig, str):
        program = pconfig
    elif "cmd" in pconfig:
        program = pconfig["cmd"]
    elif default is not None:
        program = default
    else:
        program = name
    program = expand_path(program)
    is_ok = lambda f: os.path.isfile(f) and os.access(f, os.X_OK)
    if is_ok(program):
        return program
    if is_ok(os.path.join(os.path.dirname(sys.executable), program)):
        return os.path.join(os.path.dirname(sys.executable), program)
    for adir in os.environ.get("PATH", "").split(os.pathsep):
        if is_ok(os.path.join(adir, program)):
            return os.path.join(adir, program)
    raise CmdNotFound("Could not find %s in PATH or configuration: %s" % (name, program))
