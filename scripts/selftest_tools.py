from __future__ import annotations
import json
import tempfile
import textwrap
from pathlib import Path

from pytoolrt.app_context import AppContext
from pytoolrt.config.models import RuntimeConfig
from pytoolrt.runner import run_tool, run_directive

def main():
    with tempfile.TemporaryDirectory() as td:
        cwd = Path(td)
        cfg = RuntimeConfig(events=False)
        with AppContext.build(cwd, cfg) as ctx:
            # add
            print(run_tool(ctx, "APPLY_PATCH", textwrap.dedent("""\
            *** Begin Patch
            *** Add File: a.txt
            +hello
            +world
            *** End Patch
            """)))

            # read
            print(run_tool(ctx, "READ_FILE", "a.txt"))
            print(run_tool(ctx, "READ", "cat a.txt"))
            print(run_tool(ctx, "READ", "git push"))

            # search
            print(run_tool(ctx, "GREP_FILES", json.dumps({"query": "world", "path": "."})))
            print(run_tool(ctx, "PROJECT_SEARCH", "o"))

            # list
            print(run_tool(ctx, "LIST_DIR", "."))

            # update
            print(run_tool(ctx, "APPLY_PATCH", textwrap.dedent("""\
            *** Begin Patch
            *** Update File: a.txt
            @@
             hello
            -world
            +zolt
            *** End Patch
            """)))
            print(run_tool(ctx, "READ_FILE", "a.txt"))

            # sessions
            print(run_tool(ctx, "EXEC_COMMAND", "echo hi"))
            print(run_tool(ctx, "EXEC_COMMAND", json.dumps({"cmd": "cat", "yield_ms": 200})))
            print(run_tool(ctx, "WRITE_STDIN", json.dumps({"session_id": 2, "chars": "ping\n", "yield_ms": 300})))

            # directive
            print(run_directive(ctx, "READ: ls -la"))

if __name__ == "__main__":
    main()
