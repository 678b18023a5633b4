"""Shared fixtures: a fake checkout and a stand-in compiler."""

import json
import sys
import textwrap

import pytest

from ccbuild.config import BuildConfig, BuildFlags, RuntimeVersion
from ccbuild.compiler import CompileContext
from ccbuild.staging import REGISTER_ELEMENT_SOURCE

# Writes the output file and source map named on the command line, plus a
# JSON dump of everything it was given. Fails when any input mentions FAIL.
FAKE_COMPILER = textwrap.dedent(
    """
    import json
    import shlex
    import sys
    from pathlib import Path

    flags = {}
    args = sys.argv[1:]
    i = 0
    while i < len(args):
        name = args[i][2:]
        if i + 1 < len(args) and not args[i + 1].startswith("--"):
            flags.setdefault(name, []).append(args[i + 1])
            i += 2
        else:
            flags.setdefault(name, []).append(True)
            i += 1

    sources = shlex.split(Path(flags["flagfile"][0]).read_text())[1::2]
    for src in sources:
        if "FAIL" in Path(src).read_text():
            sys.stderr.write(src + ":1: ERROR - intentional failure\\n")
            sys.exit(2)

    out = flags["js_output_file"][0]
    Path(out).write_text(
        "var v='$internalRuntimeVersion$',t='$internalRuntimeToken$';"
        + "/* " + flags["entry_point"][0] + " */"
    )
    Path(flags["create_source_map"][0]).write_text(json.dumps({"version": 3}))
    Path(out + ".args.json").write_text(json.dumps({"flags": flags, "sources": sources}))
    sys.stderr.write("WARNING - something harmless\\n")
    """
)


def write(root, rel, text=""):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


@pytest.fixture
def checkout(tmp_path):
    """A minimal repository layout the compile runner can work with."""
    write(tmp_path, REGISTER_ELEMENT_SOURCE, "/* document-register-element */")
    write(tmp_path, "src/amp.js", "import './polyfills';")
    write(tmp_path, "src/polyfills.js", "// polyfills")
    write(tmp_path, "src/runtime_test.js", "// test")
    write(tmp_path, "extensions/amp-ad/0.1/amp-ad.js", "// ad")
    write(tmp_path, "tools/fake_compiler.py", FAKE_COMPILER)
    return tmp_path


@pytest.fixture
def config(checkout):
    return BuildConfig(
        root=checkout,
        compiler_path="tools/fake_compiler.py",
        launcher=[sys.executable],
        window_config={"canary": 0},
    )


@pytest.fixture
def version():
    return RuntimeVersion(version="1461620284545", token="prod-token")


@pytest.fixture
def context(config, version):
    return CompileContext(config=config, flags=BuildFlags(), version=version)


@pytest.fixture
def compiler_args(checkout):
    """Reads back what the fake compiler was given for an intermediate file."""

    def read(intermediate):
        return json.loads((checkout / (intermediate + ".args.json")).read_text())

    return read
