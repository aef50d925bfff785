import pytest

from ec2cli.exceptions import ConfigurationError
from ec2cli.profile import (
    DEFAULT_PROFILE,
    AmiConfig,
    Profile,
    RootVolume,
    Toolchain,
    validate_profile_name,
)


class TestDefaults:
    def test_default_profile(self):
        assert DEFAULT_PROFILE.name == "default"
        assert DEFAULT_PROFILE.instance_type == "t3.large"
        assert DEFAULT_PROFILE.ami == AmiConfig("ubuntu-24.04", "x86_64")
        assert DEFAULT_PROFILE.root_volume.size_gb == 30
        assert DEFAULT_PROFILE.root_volume.volume_type == "gp3"
        assert DEFAULT_PROFILE.validate() is DEFAULT_PROFILE

    def test_profiles_are_immutable(self):
        with pytest.raises(AttributeError):
            DEFAULT_PROFILE.instance_type = "t3.nano"


class TestFromDict:
    def test_full_table(self):
        profile = Profile.from_dict(
            "big",
            {
                "instance_type": "m7i.2xlarge",
                "fallback_types": ["m7i.xlarge", "m6i.xlarge"],
                "system_packages": ["git", "jq"],
                "ami": {"os_family": "ubuntu-22.04", "architecture": "arm64"},
                "root_volume": {"size_gb": 100, "iops": 6000},
                "toolchain": {"channel": "nightly", "components": ["miri"], "packages": ["cargo-watch"]},
                "environment": {"RUST_LOG": "debug", "JOBS": 8},
            },
        )

        assert profile.name == "big"
        assert profile.fallback_types == ("m7i.xlarge", "m6i.xlarge")
        assert profile.system_packages == ("git", "jq")
        assert profile.ami == AmiConfig("ubuntu-22.04", "arm64")
        assert profile.root_volume == RootVolume(size_gb=100, iops=6000)
        assert profile.toolchain == Toolchain(channel="nightly", components=("miri",), packages=("cargo-watch",))
        assert dict(profile.environment) == {"RUST_LOG": "debug", "JOBS": "8"}

    def test_empty_table_gives_defaults(self):
        assert Profile.from_dict("x", {}) == Profile(name="x")

    def test_unknown_field(self):
        with pytest.raises(ConfigurationError, match="Invalid profile 'x'"):
            Profile.from_dict("x", {"instance_size": "large"})

    def test_unknown_nested_field(self):
        with pytest.raises(ConfigurationError):
            Profile.from_dict("x", {"root_volume": {"size": 10}})


class TestValidate:
    @pytest.mark.parametrize(
        "profile,message",
        [
            (Profile(instance_type=""), "Instance type"),
            (Profile(root_volume=RootVolume(size_gb=4)), "Root volume size"),
            (Profile(root_volume=RootVolume(size_gb=20000)), "Root volume size"),
            (Profile(root_volume=RootVolume(volume_type="magnetic")), "Invalid volume type"),
            (Profile(ami=AmiConfig(architecture="riscv64")), "Invalid architecture"),
            (Profile(ami=AmiConfig(os_family="debian-12")), "Invalid AMI type"),
            (Profile(toolchain=Toolchain(channel="1.75")), "Invalid toolchain channel"),
        ],
    )
    def test_rejects(self, profile, message):
        with pytest.raises(ConfigurationError, match=message):
            profile.validate()

    def test_explicit_ami_id_skips_family_check(self):
        profile = Profile(ami=AmiConfig(os_family="custom", id="ami-0123456789abcdef0"))
        assert profile.validate() is profile

    def test_disabled_toolchain_skips_channel_check(self):
        profile = Profile(toolchain=Toolchain(enabled=False, channel="weird"))
        assert profile.validate() is profile


@pytest.mark.parametrize("name", ["default", "big-box", "gpu_2"])
def test_valid_profile_names(name):
    assert validate_profile_name(name) == name


@pytest.mark.parametrize("name", ["", "a b", "../x", "a.b"])
def test_invalid_profile_names(name):
    with pytest.raises(ConfigurationError):
        validate_profile_name(name)
