# This file is part of CompHiFi.
# 
# CompHiFi is free software: you can redistribute it and/or modify it
# under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# 
# CompHiFi is distributed in the hope that it will be useful, but 
# WITHOUT ANY WARRANTY; without even the implied warranty of 
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the GNU
# General Public License for more details.
# 
# You should have received a copy of the GNU General Public License
# along with CompHiFi. If not, see <https://www.gnu.org/licenses/>.

# copyright 2024 the CompHiFi authors

import json
import os, sys
from pathlib import Path
import argparse
import inspect
import logging
import multiprocessing

from .constants import ASSEMBLERS, DEFAULT_PREFIX, DEFAULT_BUSCO_LINEAGE, PARAMS, RUN_CONFIG
from .dependencies import CheckDependencies, RequiredTools
from .models import CompHiFiError, ConfigError, RunConfig
from .pipeline import GetStage, Pipeline, STAGE_NAMES
from .steps.common import ConfigureLogging
from .utils import NAME, VERSION, ENTRY_POINTS

CLI_ENTRY = ENTRY_POINTS[0].split("=")[0].strip()
    
class ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_help(sys.stderr)
        self.exit(1, '\n%s: error: %s\n' % (self.prog, message))


class CommandLineInterface:
    def _get_fn_name(self):
        return inspect.stack()[1][3]

    def _load_previous(self, output: str):
        root = Path(output).expanduser().resolve()
        saved = root.joinpath(RUN_CONFIG)
        if not saved.exists():
            raise ConfigError(f"no previous run found in [{root}]")
        return RunConfig.Load(saved).Replace(output=root)

    def run(self, raw_args):
        parser = ArgumentParser(
            prog = f'{CLI_ENTRY} {self._get_fn_name()}',
            description="assemble, scaffold, gap close and evaluate a genome from HiFi and Hi-C reads",
        )

        paths = parser.add_argument_group(title="main")
        paths.add_argument("--hifi", metavar="FASTX", nargs='*', required=False, default=[],
            help="HiFi reads, multiple files may be space or comma separated")
        paths.add_argument("--hic1", metavar="FASTQ", required=False,
            help="Hi-C reads (R1)")
        paths.add_argument("--hic2", metavar="FASTQ", required=False,
            help="Hi-C reads (R2)")
        paths.add_argument("--genomeSize", metavar="SIZE", required=False,
            help="estimated genome size, ex. 5m, 1.2g")
        paths.add_argument("-o", "--output", metavar="PATH", required=False, default=".",
            help="path to output folder, will be created if non-existent, default: current directory")

        parser.add_argument("--prefix", metavar="STR", default=DEFAULT_PREFIX,
            help=f"prefix for output files, default: {DEFAULT_PREFIX}")
        parser.add_argument("--cpu", metavar="INT", type=int,
            help="threads, default:ALL", default=multiprocessing.cpu_count())
        parser.add_argument("--review", action="store_true", default=False, required=False,
            help=f"stop after the draft scaffolds for manual review in juicebox, continue with \"{CLI_ENTRY} resume\"")
        parser.add_argument("--assemblers", nargs='*', required=False, default=list(ASSEMBLERS),
            help=f"assemblers to run, hifiasm is required, default: {ASSEMBLERS}")
        parser.add_argument("--keep_going", action="store_true", default=False, required=False,
            help="continue without assemblers other than hifiasm that fail")
        parser.add_argument("--busco_lineage", metavar="STR", default=DEFAULT_BUSCO_LINEAGE,
            help=f"busco lineage dataset, default: {DEFAULT_BUSCO_LINEAGE}")
        parser.add_argument("--busco_db", metavar="PATH", required=False,
            help="local busco download path, runs busco offline")
        parser.add_argument("--merqury", action="store_true", default=False, required=False,
            help="also estimate consensus quality with merqury")
        parser.add_argument("--overwrite", action="store_true", default=False, required=False,
            help="rerun every stage, even if previous results exist")
        args = parser.parse_args(raw_args)

        #########################
        # verify & parse inputs
        #########################
        errors = []
        def _error(message: str):
            if len(errors) == 0:
                parser.print_help()
                print()
            print(f"Invalid input: {message}")
            errors.append(message)

        config = RunConfig.Parse(args, _error)
        if len(errors)>0:
            raise ConfigError("; ".join(errors))

        output = config.output
        if not output.exists(): os.makedirs(output)
        ConfigureLogging(output)
        with open(output.joinpath(PARAMS), "w") as j:
            d = args.__dict__|dict(
                current_directory=os.getcwd(),
                version=VERSION,
            )
            for k in list(d):
                if isinstance(d[k], list) and len(d[k]) == 0: del d[k]
                elif d[k] is None: del d[k]
            json.dump(d, j, indent=4)

        CheckDependencies(RequiredTools(config))
        config.Save()

        #########################
        # run
        #########################
        return Pipeline(config).Run()

    def resume(self, raw_args):
        parser = ArgumentParser(
            prog = f'{CLI_ENTRY} {self._get_fn_name()}',
            description="continue after manual review of the draft scaffolds",
        )
        parser.add_argument("--assembly", metavar="FILENAME", required=False,
            help="file name (not path) of the reviewed .assembly, placed in the 3d-dna folder of the scaffolding directory")
        parser.add_argument("-o", "--output", metavar="PATH", required=False, default=".",
            help="output folder of the original run, default: current directory")
        parser.add_argument("--cpu", metavar="INT", type=int, required=False,
            help="threads, default: same as the original run")
        args = parser.parse_args(raw_args)

        if args.assembly is None:
            parser.print_help()
            raise ConfigError("missing required parameter --assembly")
        config = self._load_previous(args.output)
        if args.cpu is not None: config = config.Replace(cpu=args.cpu)
        ConfigureLogging(config.output)
        CheckDependencies(RequiredTools(config, resume=True))
        return Pipeline(config).Resume(args.assembly)

    def api(self, raw_args=None):
        parser = ArgumentParser(
            prog = f'{CLI_ENTRY} {self._get_fn_name()}',
            description=f"run a single step against the output folder of a previous run",
        )

        parser.add_argument("--step", required=True, choices=STAGE_NAMES)
        parser.add_argument("-o", "--output", metavar="PATH", required=False, default=".",
            help="output folder of the original run, default: current directory")
        args = parser.parse_args(raw_args)

        config = self._load_previous(args.output)
        ConfigureLogging(config.output)
        return Pipeline(config).RunStage(GetStage(args.step))

    def help(self, args=None):
        help = [
            f"{NAME} v{VERSION}",
            f"",
            f"Syntax: {CLI_ENTRY} COMMAND [OPTIONS]",
            f"",
            f"Where COMMAND is one of:",
        ]+[f"- {k}" for k in COMMANDS]+[
            f"",
            f"for additional help, use:",
            f"{CLI_ENTRY} COMMAND -h/--help",
        ]
        help = "\n".join(help)
        print(help)
COMMANDS = {k:v for k, v in CommandLineInterface.__dict__.items() if k[0]!="_"}

def main(argv: list[str]|None=None):
    argv = sys.argv[1:] if argv is None else argv
    cli = CommandLineInterface()
    if len(argv) == 0:
        cli.help()
        return

    ConfigureLogging()
    try:
        COMMANDS.get(# calls command function with args
            argv[0], 
            CommandLineInterface.help # default
        )(cli, argv[1:]) # cli is instance of "self"
    except CompHiFiError as e:
        log = logging.getLogger(NAME)
        log.error(f"[ERROR] {e}")
        log.error(f"[ERROR] An error occurred, {NAME} aborted!")
        sys.exit(1)

if __name__ == "__main__":
    main()
