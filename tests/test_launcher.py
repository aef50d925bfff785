import base64

import pytest
from conftest import client_error

from ec2cli.ami import AmiResolver, ResolvedImage
from ec2cli.bootstrap import BootstrapScriptBuilder
from ec2cli.config import Settings
from ec2cli.exceptions import AwsApiError, ImageNotFoundError
from ec2cli.infra import Infrastructure
from ec2cli.launcher import InstanceLauncher, block_device_mapping, build_launch_request
from ec2cli.profile import DEFAULT_PROFILE, Profile, RootVolume
from ec2cli.security_group import SecurityGroupManager
from ec2cli.tags import resource_tags

INFRA = Infrastructure(
    vpc_id="vpc-1",
    subnet_id="subnet-1",
    role_arn="arn:aws:iam::123456789012:role/r",
    role_name="r",
    instance_profile_arn="arn:aws:iam::123456789012:instance-profile/p",
    instance_profile_name="p",
)
SCRIPT = BootstrapScriptBuilder().build(DEFAULT_PROFILE, "ubuntu")


@pytest.fixture
def launcher(ec2_factory, settings) -> InstanceLauncher:
    return InstanceLauncher(
        ec2_factory,
        AmiResolver(ec2_factory),
        SecurityGroupManager(ec2_factory, settings),
        settings,
    )


@pytest.fixture
def ec2(ec2):
    ec2.describe_images.return_value = {
        "Images": [
            {
                "ImageId": "ami-123",
                "CreationDate": "2024-01-01T00:00:00.000Z",
                "RootDeviceName": "/dev/sda1",
            }
        ]
    }
    ec2.run_instances.return_value = {"Instances": [{"InstanceId": "i-abc"}]}
    return ec2


class TestLaunchRequest:
    def test_hardening_for_default_profile(self):
        request = build_launch_request(
            image=ResolvedImage("ami-123", "/dev/sda1"),
            instance_type="t3.large",
            infrastructure=INFRA,
            security_group_id="sg-1",
            profile=DEFAULT_PROFILE,
            bootstrap_script=SCRIPT,
            tags=resource_tags("dev"),
        )

        ebs = request["BlockDeviceMappings"][0]["Ebs"]
        assert request["BlockDeviceMappings"][0]["DeviceName"] == "/dev/sda1"
        assert ebs["VolumeSize"] == 30
        assert ebs["Encrypted"] is True
        assert ebs["DeleteOnTermination"] is True
        assert request["MetadataOptions"] == {
            "HttpTokens": "required",
            "HttpPutResponseHopLimit": 1,
            "HttpEndpoint": "enabled",
        }
        assert request["MinCount"] == request["MaxCount"] == 1
        assert request["SecurityGroupIds"] == ["sg-1"]
        assert request["IamInstanceProfile"] == {"Arn": INFRA.instance_profile_arn}
        assert request["UserData"] == SCRIPT.text
        assert "KeyName" not in request
        assert [s["ResourceType"] for s in request["TagSpecifications"]] == ["instance", "volume"]

    def test_user_data_is_not_pre_encoded(self):
        request = build_launch_request(
            image=ResolvedImage("ami-123", "/dev/sda1"),
            instance_type="t3.large",
            infrastructure=INFRA,
            security_group_id="sg-1",
            profile=DEFAULT_PROFILE,
            bootstrap_script=SCRIPT,
            tags=[],
        )
        assert request["UserData"].startswith("#!/bin/bash")
        assert request["UserData"] != base64.b64encode(SCRIPT.text.encode()).decode()

    def test_gp3_carries_iops_and_throughput(self):
        ebs = block_device_mapping("/dev/xvda", RootVolume())["Ebs"]
        assert ebs["Iops"] == 3000
        assert ebs["Throughput"] == 125

    def test_gp2_drops_iops_and_throughput(self):
        ebs = block_device_mapping("/dev/xvda", RootVolume(volume_type="gp2"))["Ebs"]
        assert "Iops" not in ebs
        assert "Throughput" not in ebs
        assert ebs["Encrypted"] is True

    def test_io2_keeps_iops_only(self):
        ebs = block_device_mapping("/dev/xvda", RootVolume(volume_type="io2", iops=10000))["Ebs"]
        assert ebs["Iops"] == 10000
        assert "Throughput" not in ebs


class TestLaunch:
    @pytest.mark.asyncio
    async def test_launch_returns_instance_id(self, launcher, ec2):
        instance_id = await launcher.launch(INFRA, "sg-1", DEFAULT_PROFILE, "dev", SCRIPT)

        assert instance_id == "i-abc"
        kwargs = ec2.run_instances.call_args.kwargs
        assert kwargs["ImageId"] == "ami-123"
        assert kwargs["InstanceType"] == "t3.large"
        tags = kwargs["TagSpecifications"][0]["Tags"]
        assert {"Key": "ec2-cli:name", "Value": "dev"} in tags
        assert {"Key": "ec2-cli:deployment", "Value": launcher.deployment} in tags
        ec2.delete_security_group.assert_not_called()

    @pytest.mark.asyncio
    async def test_custom_tags_applied(self, ec2_factory, ec2):
        settings = Settings(region="us-east-1", tags={"CostCenter": "research"})
        launcher = InstanceLauncher(
            ec2_factory, AmiResolver(ec2_factory), SecurityGroupManager(ec2_factory, settings), settings
        )

        await launcher.launch(INFRA, "sg-1", DEFAULT_PROFILE, "dev", SCRIPT)

        tags = ec2.run_instances.call_args.kwargs["TagSpecifications"][1]["Tags"]
        assert {"Key": "CostCenter", "Value": "research"} in tags

    @pytest.mark.asyncio
    async def test_falls_back_on_capacity(self, launcher, ec2):
        ec2.run_instances.side_effect = [
            client_error("InsufficientInstanceCapacity"),
            {"Instances": [{"InstanceId": "i-fallback"}]},
        ]

        instance_id = await launcher.launch(INFRA, "sg-1", DEFAULT_PROFILE, "dev", SCRIPT)

        assert instance_id == "i-fallback"
        types = [c.kwargs["InstanceType"] for c in ec2.run_instances.call_args_list]
        assert types == ["t3.large", "t3.medium"]

    @pytest.mark.asyncio
    async def test_all_types_exhausted(self, launcher, ec2):
        ec2.run_instances.side_effect = client_error("InsufficientInstanceCapacity")

        with pytest.raises(AwsApiError) as exc_info:
            await launcher.launch(INFRA, "sg-1", DEFAULT_PROFILE, "dev", SCRIPT)

        assert exc_info.value.code == "InsufficientInstanceCapacity"
        assert ec2.run_instances.call_count == 2
        ec2.delete_security_group.assert_called_once_with(GroupId="sg-1")

    @pytest.mark.asyncio
    async def test_capacity_error_without_fallbacks(self, launcher, ec2, log_messages):
        ec2.run_instances.side_effect = client_error("InsufficientInstanceCapacity")
        profile = Profile(fallback_types=())

        with pytest.raises(AwsApiError) as exc_info:
            await launcher.launch(INFRA, "sg-1", profile, "dev", SCRIPT)

        assert exc_info.value.code == "InsufficientInstanceCapacity"
        assert ec2.run_instances.call_count == 1
        assert not any("trying next type" in m for m in log_messages)

    @pytest.mark.asyncio
    async def test_other_errors_do_not_fall_back(self, launcher, ec2):
        ec2.run_instances.side_effect = client_error("InvalidParameterValue")

        with pytest.raises(AwsApiError):
            await launcher.launch(INFRA, "sg-1", DEFAULT_PROFILE, "dev", SCRIPT)

        assert ec2.run_instances.call_count == 1
        ec2.delete_security_group.assert_called_once_with(GroupId="sg-1")

    @pytest.mark.asyncio
    async def test_ami_failure_rolls_back(self, launcher, ec2):
        ec2.describe_images.return_value = {"Images": []}

        with pytest.raises(ImageNotFoundError):
            await launcher.launch(INFRA, "sg-1", DEFAULT_PROFILE, "dev", SCRIPT)

        ec2.run_instances.assert_not_called()
        ec2.delete_security_group.assert_called_once_with(GroupId="sg-1")

    @pytest.mark.asyncio
    async def test_rollback_failure_keeps_original_error(self, launcher, ec2, log_messages):
        ec2.run_instances.side_effect = client_error("InvalidParameterValue", "bad type")
        ec2.delete_security_group.side_effect = client_error("DependencyViolation")

        with pytest.raises(AwsApiError) as exc_info:
            await launcher.launch(INFRA, "sg-1", DEFAULT_PROFILE, "dev", SCRIPT)

        assert exc_info.value.code == "InvalidParameterValue"
        assert any(
            m.startswith("WARNING") and "aws ec2 delete-security-group --group-id sg-1" in m
            for m in log_messages
        )

    @pytest.mark.asyncio
    async def test_no_fallback_types(self, launcher, ec2):
        profile = Profile(fallback_types=())
        ec2.run_instances.side_effect = client_error("Unsupported")

        with pytest.raises(AwsApiError):
            await launcher.launch(INFRA, "sg-1", profile, "dev", SCRIPT)

        assert ec2.run_instances.call_count == 1
