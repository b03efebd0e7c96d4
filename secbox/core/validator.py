"""
Command policy: denylist -> dangerous patterns -> path traversal.
Pure functions, no I/O, safe to call from any thread. First matching rule wins.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath, PureWindowsPath

DENIED_COMMANDS = frozenset({
    # privilege escalation
    "sudo", "su", "doas", "chroot",
    # destructive filesystem / disk
    "rm", "del", "format", "fdisk", "mkfs", "mkfs.ext", "mkfs.ext4", "mkfs.ntfs", "mkfs.fat",
    "dd", "parted", "gparted", "cfdisk", "sfdisk", "wipefs", "blkdiscard", "hdparm",
    "smartctl", "badblocks", "fsck", "e2fsck", "xfs_repair", "ntfsfix", "mount", "umount",
    "chmod", "chown", "chgrp",
    # system control
    "shutdown", "reboot", "halt", "poweroff", "init", "systemctl", "service",
    "crontab", "at", "batch", "anacron",
    # process control
    "kill", "killall", "killall5", "pkill", "nohup", "disown", "bg", "fg", "jobs", "wait",
    # shell control flow / state
    "exec", "eval", "source", "export", "unset", "alias", "unalias", "history", "fc",
    "bind", "set", "shopt", "ulimit", "umask", "trap", "exit", "logout", "suspend",
    # networking
    "wget", "curl", "nc", "netcat", "telnet", "ftp", "sftp", "scp", "rsync",
    "ssh", "ssh-keygen", "ssh-add", "ssh-agent",
    "iptables", "ufw", "firewall-cmd", "nft", "ip", "route", "arp", "netstat", "ss",
    "lsof", "fuser",
    # tracing / debugging
    "strace", "ltrace", "gdb", "lldb", "valgrind", "perf", "tcpdump", "wireshark",
    # offensive tooling
    "nmap", "masscan", "zmap", "hydra", "john", "hashcat", "aircrack-ng", "reaver",
    "sqlmap", "nikto", "dirb", "gobuster", "wfuzz", "msfconsole", "msfvenom",
    "armitage", "setoolkit", "recon-ng", "spiderfoot", "theharvester",
})

# Matched against "command arg1 arg2 ...", case-insensitive.
DANGEROUS_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE) for p in (
        r"\brm\s+-[a-z]*r[a-z]*f|\brm\s+-[a-z]*f[a-z]*r",
        r"\bdel\s+/s",
        r"\bformat\s+",
        r"\bfdisk\s+",
        r"\bmkfs",
        r"\bshutdown\b",
        r"\breboot\b",
        r"\bhalt\b",
        r"\bpoweroff\b",
        r"\binit\s+[0-6]\b",
        r"\bsystemctl\s+(stop|restart|reload|disable|mask)\b",
        r"\bservice\s+\S+\s+(stop|restart|reload)\b|\bservice\s+(stop|restart|reload)\b",
        r"\bchmod\s+(-\w+\s+)*0?777\b",
        r"\bchown\s+(-\w+\s+)*root\b",
        r"\bu?mount\s+/",
        r"\bdd\s+if=",
        r"\bparted\s+",
        r"\b(gparted|cfdisk|sfdisk|wipefs|blkdiscard|hdparm|smartctl|badblocks)\b",
        r"\b(e2fsck|fsck|xfs_repair|ntfsfix|chroot)\b",
        r"\b(killall5?|pkill)\b",
        r"\bkill\s+-(9|kill|sigkill)\b",
        # Shell builtins: command position only (line start or after ; & |).
        r"(^|[;&|]\s*)(nohup|disown)\b",
        r"(^|[;&|]\s*)(exec|eval|source|export|unset|unalias|shopt|ulimit|umask|trap)\b",
        r"(^|[;&|]\s*)(bg|fg|jobs|wait|alias|history|fc|bind|set|exit|logout|suspend)\b",
        r":\(\)\s*\{\s*:\|:&\s*\};:",  # fork bomb
    )
)

PATH_TRAVERSAL_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE) for p in (
        r"\.\./",
        r"\.\.\\",
        r"\.\.%2f",
        r"\.\.%5c",
        r"\.\.%252f",
        r"\.\.%255c",
    )
)


@dataclass(frozen=True)
class Verdict:
    safe: bool
    reason: str = ""
    rule: str = ""  # "empty" | "denylist" | "pattern" | "path_traversal"
    pattern: str = ""


SAFE = Verdict(safe=True)


def command_names(command: str) -> set[str]:
    """The command as given plus its basename, lowercased, without a .exe suffix."""
    names = set()
    for raw in (command, PurePosixPath(command).name, PureWindowsPath(command).name):
        name = raw.strip().lower()
        if name.endswith(".exe"):
            name = name[:-4]
        if name:
            names.add(name)
    return names


def validate(command: str, args: list[str] | tuple[str, ...] = (), allow_unsafe: bool = False) -> Verdict:
    if allow_unsafe:
        return SAFE

    if not command or not command.strip():
        return Verdict(False, "Empty command is not allowed", rule="empty")

    denied = command_names(command) & DENIED_COMMANDS
    if denied:
        return Verdict(
            False,
            f"Command '{command}' is not allowed for security reasons",
            rule="denylist",
            pattern=sorted(denied)[0],
        )

    full_command = " ".join((command, *args))
    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(full_command):
            return Verdict(
                False,
                f"Command pattern '{pattern.pattern}' is not allowed for security reasons",
                rule="pattern",
                pattern=pattern.pattern,
            )

    for pattern in PATH_TRAVERSAL_PATTERNS:
        if pattern.search(full_command):
            return Verdict(
                False,
                "Path traversal attempts are not allowed",
                rule="path_traversal",
                pattern=pattern.pattern,
            )

    return SAFE
