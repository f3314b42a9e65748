from __future__ import annotations

import collections.abc

import sakura

POCKETBASE_HOME = "/home/ec2-user/pocketbase"
BACKUP_SCRIPT = "/home/ec2-user/backup_pocketbase.sh"
BACKUP_LOG = "/var/log/backup.log"
DEFAULT_BACKUP_SCHEDULE = "0 2 * * *"


def pocketbase_release_url(version: str) -> str:
    return (
        f"https://github.com/pocketbase/pocketbase/releases/download/v{version}/pocketbase_{version}_linux_amd64.zip"
    )


def pocketbase_boot_commands(
    bucket_name: str,
    version: str = sakura.POCKETBASE_VERSION,
    port: int = sakura.POCKETBASE_PORT,
    backup_schedule: str = DEFAULT_BACKUP_SCHEDULE,
) -> tuple[str, ...]:
    """
    First-boot commands for the PocketBase host.

    Installs and starts PocketBase on `port`, installs the AWS CLI, writes a
    backup script that tars `pb_data` and copies it to `bucket_name`, and
    registers that script in /etc/crontab on `backup_schedule`.
    """
    archive = f"pocketbase_{version}_linux_amd64.zip"

    return (
        "yum update -y",
        "yum install -y wget unzip",
        f"wget {pocketbase_release_url(version)}",
        f"unzip {archive} -d {POCKETBASE_HOME}",
        f"chmod +x {POCKETBASE_HOME}/pocketbase",
        f"nohup {POCKETBASE_HOME}/pocketbase serve --http 0.0.0.0:{port} &",
        "yum install -y awscli",
        f'echo "#!/bin/bash" > {BACKUP_SCRIPT}',
        (
            'echo "tar -czf /home/ec2-user/pocketbase_backup_$(date +%F).tar.gz '
            f'{POCKETBASE_HOME}/pb_data" >> {BACKUP_SCRIPT}'
        ),
        (
            'echo "aws s3 cp /home/ec2-user/pocketbase_backup_$(date +%F).tar.gz '
            f's3://{bucket_name}/" >> {BACKUP_SCRIPT}'
        ),
        f"chmod +x {BACKUP_SCRIPT}",
        f'echo "{backup_schedule} {BACKUP_SCRIPT} >> {BACKUP_LOG} 2>&1" >> /etc/crontab',
        "service crond restart",
    )


def render_user_data(commands: collections.abc.Sequence[str]) -> str:
    # commands are opaque and kept in order
    return "\n".join(["#!/bin/bash", *commands])
