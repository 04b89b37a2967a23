"""Database connectivity probe executed through the PHP runtime."""

from __future__ import annotations

import base64
import json
from typing import List

from pydantic import BaseModel

from ..errors import ProbeError

# Runs under `php -r`; reads a base64 JSON config from argv[1] and prints
# {"ok": bool, "error": string}. PostgreSQL succeeds when either a
# maintenance database or the target database accepts the connection.
PROBE_SCRIPT = r"""
$cfg = json_decode(base64_decode($argv[1] ?? ''), true);
if (!is_array($cfg)) { echo json_encode(["ok"=>false,"error"=>"Invalid config"]); exit(0); }
$type = $cfg["type"] ?? "mysql";
$driverMap = ["mysql"=>"mysql","pgsql"=>"pgsql","sqlite"=>"sqlite","sqlsrv"=>"sqlsrv"];
$required = $driverMap[$type] ?? null;
$driverName = match($type) { "mysql"=>"MySQL/MariaDB","pgsql"=>"PostgreSQL","sqlite"=>"SQLite","sqlsrv"=>"SQL Server", default => $type };
$ext = match($type) { "sqlite"=>"pdo_sqlite","sqlsrv"=>"pdo_sqlsrv", default => "pdo_".$type };
if ($required && !in_array($required, \PDO::getAvailableDrivers(), true)) {
  echo json_encode(["ok"=>false,"error"=>"PDO driver for {$driverName} is not installed. Please install PHP extension: {$ext}"]);
  exit(0);
}
try {
  $host = $cfg["host"] ?? "localhost";
  $port = (int)($cfg["port"] ?? 0);
  $name = $cfg["name"] ?? "";
  $user = $cfg["user"] ?? "";
  $pass = $cfg["password"] ?? "";
  $timeout = [\PDO::ATTR_TIMEOUT => 5];
  if ($type === "sqlite") {
    if ($name === "") { echo json_encode(["ok"=>false,"error"=>"SQLite database path is required."]); exit(0); }
    new \PDO("sqlite:".$name, null, null, $timeout);
    echo json_encode(["ok"=>true]); exit(0);
  }
  if ($type === "pgsql") {
    $maintenanceOk = false;
    $maintenanceErr = null;
    foreach (["postgres", "template1"] as $db) {
      try {
        $dsnMaint = $port > 0 ? "pgsql:host={$host};port={$port};dbname={$db}" : "pgsql:host={$host};dbname={$db}";
        new \PDO($dsnMaint, $user, $pass, $timeout);
        $maintenanceOk = true;
        break;
      } catch (\Throwable $e) {
        $maintenanceErr = $e;
      }
    }
    $targetOk = false;
    $targetErr = null;
    if ($name !== "") {
      try {
        $dsn = $port > 0 ? "pgsql:host={$host};port={$port};dbname={$name}" : "pgsql:host={$host};dbname={$name}";
        new \PDO($dsn, $user, $pass, $timeout);
        $targetOk = true;
      } catch (\Throwable $e) {
        $targetErr = $e;
      }
    }
    if (!$maintenanceOk && !$targetOk) {
      throw $targetErr ?? $maintenanceErr ?? new \Exception("PostgreSQL connection failed.");
    }
    echo json_encode(["ok"=>true]); exit(0);
  }
  $dsnNoDb = match($type) {
    "sqlsrv" => $port > 0 ? "sqlsrv:Server={$host},{$port}" : "sqlsrv:Server={$host}",
    default => "mysql:host={$host};port={$port};charset=utf8mb4",
  };
  new \PDO($dsnNoDb, $user, $pass, $timeout);
  if ($name !== "") {
    $dsn = match($type) {
      "sqlsrv" => ($port > 0 ? "sqlsrv:Server={$host},{$port};Database={$name}" : "sqlsrv:Server={$host};Database={$name}"),
      default => "mysql:host={$host};port={$port};dbname={$name};charset=utf8mb4",
    };
    new \PDO($dsn, $user, $pass, $timeout);
  }
  echo json_encode(["ok"=>true]); exit(0);
} catch (\Throwable $e) {
  $msg = $e->getMessage();
  if (str_contains($msg, "could not find driver") || str_contains($msg, "driver not found")) {
    $msg = "PDO driver for {$driverName} is not installed. Please install PHP extension: {$ext}";
  }
  echo json_encode(["ok"=>false,"error"=>$msg]); exit(0);
}
"""


class DatabaseConfig(BaseModel):
    """Connection parameters handed to the probe."""

    type: str
    host: str = ""
    port: int = 0
    name: str = ""
    user: str = ""
    password: str = ""


class ProbeResult(BaseModel):
    ok: bool = False
    error: str = ""


def encode_probe_config(config: DatabaseConfig) -> str:
    """Base64 JSON with empty values omitted."""
    payload = config.model_dump(exclude_defaults=True)
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def probe_argv(php_binary: str, config: DatabaseConfig) -> List[str]:
    return [php_binary, "-r", PROBE_SCRIPT, encode_probe_config(config)]


def parse_probe_output(stdout: str) -> ProbeResult:
    try:
        return ProbeResult.model_validate_json(stdout.strip())
    except ValueError as exc:
        raise ProbeError(f"unexpected database probe output: {stdout.strip()[:200]}") from exc
