from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from dockerstart.assemble import assemble, log_targets
from dockerstart.memory import build_memory_args
from dockerstart.models import LaunchConfig, PathMapping
from dockerstart.profiles import select_profile

MAPPINGS = [
    PathMapping(host_path="/data/in", container_path="/in"),
    PathMapping(host_path="/data/out", container_path="/data/out"),
]


def _config(**overrides) -> LaunchConfig:
    base = LaunchConfig(image="myimage", run_name="job")
    return replace(base, **overrides)


def test_docker_interactive_command() -> None:
    config = _config()
    profile = select_profile("docker", interactive=True)

    result = assemble(config, MAPPINGS, profile, "", log_targets(config))

    assert result.commands == (
        "docker run -it -v /data/in:/in -v /data/out:/data/out myimage /bin/bash",
    )
    assert result.preamble is None


def test_docker_batch_command_redirects_logs() -> None:
    config = _config(command="bash run.sh", interactive=False, log_dir="logs")
    profile = select_profile("docker", interactive=False)

    result = assemble(config, MAPPINGS[:1], profile, "", log_targets(config))

    assert result.final == (
        "docker run -v /data/in:/in myimage bash run.sh > logs/job.out 2> logs/job.err"
    )


def test_docker_logs_forced_off() -> None:
    config = _config(command="true", interactive=False, write_logs=False)
    profile = select_profile("docker", interactive=False)

    assert log_targets(config) is None
    assert assemble(config, [], profile, "", None).final == "docker run myimage true"


def test_docker_env_vars_become_env_flags() -> None:
    config = _config(env_vars=("A=1", "B=two words"))
    profile = select_profile("docker", interactive=True)

    result = assemble(config, [], profile, "", None)

    assert result.final == (
        "docker run --env A=1 --env 'B=two words' -it myimage /bin/bash"
    )


def test_paths_with_spaces_are_quoted() -> None:
    mapping = PathMapping(host_path="/my data", container_path="/data")
    profile = select_profile("docker", interactive=True)

    result = assemble(_config(), [mapping], profile, "", None)

    assert "-v '/my data:/data'" in result.final


def test_mgi_interactive_commands() -> None:
    config = _config()
    profile = select_profile("MGI", interactive=True)
    mem_args = build_memory_args(4, profile)

    result = assemble(config, MAPPINGS, profile, mem_args, log_targets(config))

    assert result.commands == (
        "export LSF_DOCKER_NETWORK=host && "
        "export LSF_DOCKER_VOLUMES='/data/in:/in /data/out:/data/out'",
        "bsub -q research-hpc -M 4000000 -R 'select[mem>4000] rusage[mem=4000]' "
        "-a 'docker(myimage)' -Is /bin/bash",
    )


def test_compute1_batch_submission_with_logs_and_extra_args() -> None:
    config = _config(
        command="bash /in/run.sh",
        interactive=False,
        log_dir="/logs",
        scheduler_args=("-G compute-lab", "-n 4"),
        preserve_environment=False,
    )
    profile = select_profile("compute1", interactive=False)

    result = assemble(config, MAPPINGS[:1], profile, "", log_targets(config))

    assert result.preamble == (
        "export LSF_DOCKER_NETWORK=host && "
        "export LSF_DOCKER_VOLUMES=/data/in:/in && "
        "export LSF_DOCKER_PRESERVE_ENVIRONMENT=false"
    )
    assert result.final == (
        "bsub -q general -G compute-lab -n 4 -e /logs/job.err -o /logs/job.out "
        "-a 'docker(myimage)' bash /in/run.sh"
    )


def test_queue_override_wins() -> None:
    config = _config(queue="gpu")
    profile = select_profile("compute1", interactive=True)

    result = assemble(config, [], profile, "", None)

    assert result.final.startswith("bsub -q gpu ")


def test_batch_env_vars_are_exported_in_preamble() -> None:
    config = _config(env_vars=("TOKEN=a b",))
    profile = select_profile("compute1", interactive=True)

    result = assemble(config, [], profile, "", None)

    assert result.preamble == (
        "export LSF_DOCKER_NETWORK=host && export LSF_DOCKER_VOLUMES='' && "
        "export TOKEN='a b'"
    )


def test_dry_run_does_not_change_commands() -> None:
    profile = select_profile("MGI", interactive=False)
    wet = _config(command="ls", interactive=False)
    dry = replace(wet, dry_run=True)

    assert assemble(wet, MAPPINGS, profile, "", log_targets(wet)) == assemble(
        dry, MAPPINGS, profile, "", log_targets(dry)
    )


def test_log_targets_paths() -> None:
    config = _config(command="ls", interactive=False, log_dir="./out", run_name="r1")
    targets = log_targets(config)

    assert targets is not None
    assert targets.log_dir == Path("./out")
    assert targets.out_path == Path("out/r1.out")
    assert targets.err_path == Path("out/r1.err")
    assert log_targets(_config()) is None
