"""Tests for environment configuration parsing."""

import pytest

from config import A2AMode, AllToAllConfig, ConfigError, EnvVars, get_env_var
from transfer import ConfigOptions, ExeType, MemType


class TestGetEnvVar:
    def test_default_when_unset_or_blank(self):
        assert get_env_var({}, "X", 5) == 5
        assert get_env_var({"X": "  "}, "X", 5) == 5

    def test_parses_integers(self):
        assert get_env_var({"X": " 08 "}, "X", 5) == 8
        assert get_env_var({"X": "-1"}, "X", 5) == -1

    def test_rejects_garbage(self):
        with pytest.raises(ConfigError, match="X must be an integer"):
            get_env_var({"X": "lots"}, "X", 5)


class TestEnvVars:
    def test_defaults(self):
        ev = EnvVars.from_env({})
        assert ev == EnvVars()
        assert ev.separator == " "
        assert ev.to_config_options() == ConfigOptions()

    def test_overrides(self):
        ev = EnvVars.from_env({"NUM_ITERATIONS": "20", "NUM_WARMUPS": "0", "OUTPUT_TO_CSV": "1",
                               "HIDE_ENV": "1", "USE_SINGLE_STREAM": "1", "GFX_UNROLL": "8"})
        assert ev.separator == ","
        assert ev.hide_env
        assert ev.to_config_options() == ConfigOptions(20, 0, True, 8)

    @pytest.mark.parametrize("env", [{"NUM_ITERATIONS": "0"}, {"NUM_WARMUPS": "-1"}])
    def test_invalid_iteration_counts(self, env):
        with pytest.raises(ConfigError):
            EnvVars.from_env(env)

    def test_display(self, capsys):
        EnvVars(num_iterations=4).display()
        out = capsys.readouterr().out
        assert out.startswith("[Common]\n")
        assert "NUM_ITERATIONS       =            4 : Running 4 timed iteration(s)" in out

    def test_display_hidden(self, capsys):
        EnvVars(hide_env=True).display()
        assert capsys.readouterr().out == ""


class TestAllToAllConfig:
    def test_defaults(self):
        a2a = AllToAllConfig.from_env({})
        assert a2a == AllToAllConfig()
        assert a2a.direct_only and not a2a.include_local
        assert a2a.mode is A2AMode.COPY
        assert a2a.num_gpus is None
        assert a2a.num_sub_execs == 8
        assert a2a.gfx_unroll == 2
        assert a2a.mem_type is MemType.GPU_FINE
        assert a2a.exe_type is ExeType.GPU_GFX

    def test_overrides(self):
        a2a = AllToAllConfig.from_env({
            "A2A_DIRECT": "0", "A2A_LOCAL": "1", "A2A_MODE": "2", "NUM_GPU_DEVICES": "3",
            "NUM_SUB_EXEC": "16", "USE_DMA_EXEC": "1", "USE_FINE_GRAIN": "0", "USE_REMOTE_READ": "1",
        })
        assert not a2a.direct_only and a2a.include_local
        assert a2a.mode is A2AMode.WRITE_ONLY
        assert a2a.num_gpus == 3
        assert a2a.num_sub_execs == 16
        assert a2a.mem_type is MemType.GPU
        assert a2a.exe_type is ExeType.GPU_DMA
        assert a2a.use_remote_read

    @pytest.mark.parametrize("mode", ["3", "-1"])
    def test_invalid_mode(self, mode):
        with pytest.raises(ConfigError, match="A2A_MODE must be between 0 and 2"):
            AllToAllConfig.from_env({"A2A_MODE": mode})

    def test_invalid_sub_execs(self):
        with pytest.raises(ConfigError):
            AllToAllConfig.from_env({"NUM_SUB_EXEC": "0"})

    def test_resolve_num_gpus(self):
        assert AllToAllConfig().resolve_num_gpus(4) == 4
        assert AllToAllConfig(num_gpus=0).resolve_num_gpus(4) == 0
        assert AllToAllConfig(num_gpus=2).resolve_num_gpus(4) == 2

    @pytest.mark.parametrize("num_gpus", [5, -1])
    def test_resolve_out_of_range(self, num_gpus):
        with pytest.raises(ConfigError, match=f"Cannot use {num_gpus} GPUs.  Detected 4 GPUs"):
            AllToAllConfig(num_gpus=num_gpus).resolve_num_gpus(4)

    def test_display_csv(self, capsys):
        AllToAllConfig(mode=A2AMode.READ_ONLY).display(6, csv=True)
        lines = capsys.readouterr().out.splitlines()
        assert "A2A_MODE,1,Read-Only" in lines
        assert "NUM_GPU_DEVICES,6,Using 6 GPUs" in lines
        assert "[AllToAll Related]" not in lines
