"""Tests for the driver properties document and its ConfigMap."""

from __future__ import annotations

import pytest

from nativesubmit.config import ConfigurationError
from nativesubmit.submit import (
    Priority,
    PropertiesDocument,
    build_config_map,
    build_properties,
    master_url,
    rewrite_local_dirs,
)
from nativesubmit.submit.properties import read_properties_file, secret_env
from tests.conftest import (
    APP_ID,
    FIXED_NOW,
    SUBMISSION_ID,
    fixed_clock,
    make_application,
    make_context,
)

ENV = {"KUBERNETES_SERVICE_HOST": "10.96.0.1", "KUBERNETES_SERVICE_PORT": "443"}


def build(app, defaults_file=None, **ctx_overrides):
    ctx = make_context(app, **ctx_overrides)
    return build_properties(app, ctx, clock=fixed_clock, environ=ENV, defaults_file=defaults_file)


def keys_of(doc):
    return [key for key, _ in doc.items()]


# =============================================================================
# PropertiesDocument
# =============================================================================


class TestPropertiesDocument:
    """Tests for priority-aware insertion."""

    def test_higher_priority_replaces(self):
        doc = PropertiesDocument()
        doc.put("k", "builtin", Priority.BUILTIN)
        doc.put("k", "spec", Priority.SPEC)
        assert doc.get("k") == "spec"
        assert doc.priority_of("k") == Priority.SPEC

    def test_lower_priority_ignored(self):
        doc = PropertiesDocument()
        doc.put("k", "spec", Priority.SPEC)
        doc.put("k", "conf", Priority.SPARK_CONF)
        assert doc.get("k") == "spec"

    def test_equal_priority_last_write_wins(self):
        doc = PropertiesDocument()
        doc.put("k", "first")
        doc.put("k", "second")
        assert doc.get("k") == "second"

    def test_position_of_first_insertion_kept(self):
        doc = PropertiesDocument()
        doc.put("a", "1", Priority.BUILTIN)
        doc.put("b", "2")
        doc.put("a", "3", Priority.FORCED)
        assert keys_of(doc) == ["a", "b"]
        assert doc.render() == "a=3\nb=2\n"

    def test_none_skipped_and_bools_lowercased(self):
        doc = PropertiesDocument()
        doc.put("none", None)
        doc.put("flag", True)
        assert "none" not in doc
        assert doc.get("flag") == "true"
        assert len(doc) == 1

    def test_put_all_with_prefix(self):
        doc = PropertiesDocument()
        doc.put_all({"x": "1", "y": "2"}, prefix="p.")
        assert doc.get("p.x") == "1"
        assert doc.get("p.y") == "2"

    def test_raw_lines_after_entries(self):
        doc = PropertiesDocument()
        doc.append_raw("arg1")
        doc.put("k", "v")
        assert doc.render() == "k=v\narg1\n"


# =============================================================================
# Builder
# =============================================================================


class TestIdentity:
    """Tests for the identity and runtime sections."""

    def test_core_properties(self, app):
        doc = build(app)
        assert doc.get("spark.driver.host") == "pi-driver-svc.spark-jobs.svc"
        assert doc.get("spark.app.id") == APP_ID
        assert doc.get("spark.master") == "k8s\\://https\\://10.96.0.1\\:443"
        assert doc.get("spark.submit.deployMode") == "cluster"
        assert doc.get("spark.kubernetes.namespace") == "spark-jobs"
        assert doc.get("spark.app.name") == "pi"
        assert doc.get("spark.kubernetes.driver.pod.name") == "pi-driver"
        assert doc.get("spark.kubernetes.submission.waitAppCompletion") == "false"
        assert doc.get("spark.kubernetes.submitInDriver") == "true"
        assert doc.get("spark.kubernetes.resource.type") == "java"
        assert doc.get("spark.app.submitTime") == str(int(FIXED_NOW * 1000))
        assert doc.get("spark.ui.proxyBase") == "/spark-jobs/pi"
        assert doc.get("spark.ui.proxyRedirectUri") == "/"

    def test_identity_comes_first(self, app):
        assert keys_of(build(app))[:2] == ["spark.driver.host", "spark.app.id"]

    def test_ports_default(self, app):
        doc = build(app)
        assert doc.get("spark.driver.port") == "7078"
        assert doc.get("spark.driver.blockManager.port") == "7079"

    def test_ports_from_conf(self):
        app = make_application(
            sparkConf={"spark.driver.port": "7000", "spark.driver.blockManager.port": "7001"}
        )
        doc = build(app)
        assert doc.get("spark.driver.port") == "7000"
        assert doc.get("spark.driver.blockManager.port") == "7001"

    def test_invalid_block_manager_port_raises(self):
        app = make_application(sparkConf={"spark.blockManager.port": "many"})
        with pytest.raises(ConfigurationError):
            build(app)

    def test_forced_keys_ignore_spark_conf(self):
        app = make_application(
            sparkConf={
                "spark.app.id": "spark-other",
                "spark.kubernetes.submission.waitAppCompletion": "true",
                "spark.ui.proxyBase": "/elsewhere",
            }
        )
        doc = build(app)
        assert doc.get("spark.app.id") == APP_ID
        assert doc.get("spark.kubernetes.submission.waitAppCompletion") == "false"
        assert doc.get("spark.ui.proxyBase") == "/spark-jobs/pi"

    def test_operator_labels_forced(self):
        app = make_application(
            sparkConf={"spark.kubernetes.driver.label.sparkoperator.k8s.io/app-name": "spoofed"}
        )
        doc = build(app)
        prefix = "spark.kubernetes.driver.label."
        assert doc.get(prefix + "sparkoperator.k8s.io/app-name") == "pi"
        assert doc.get(prefix + "sparkoperator.k8s.io/launched-by-spark-operator") == "true"
        assert doc.get(prefix + "sparkoperator.k8s.io/submission-id") == SUBMISSION_ID
        assert doc.get("spark.kubernetes.executor.label.sparkoperator.k8s.io/app-name") == "pi"

    def test_ipv6_master(self, app):
        ctx = make_context(app)
        doc = build_properties(
            app,
            ctx,
            clock=fixed_clock,
            environ={"KUBERNETES_SERVICE_HOST": "fd00::1", "KUBERNETES_SERVICE_PORT": "6443"},
            defaults_file=None,
        )
        assert doc.get("spark.master") == "k8s\\://https\\://[fd00\\:\\:1]\\:6443"


class TestPrecedence:
    """Structured fields beat sparkConf, which beats built-in defaults."""

    def test_driver_memory_field_beats_conf(self):
        app = make_application(sparkConf={"spark.driver.memory": "4g"})
        assert build(app).get("spark.driver.memory") == "1024m"

    def test_driver_memory_conf_beats_default(self):
        app = make_application(driver={}, sparkConf={"spark.driver.memory": "4g"})
        assert build(app).get("spark.driver.memory") == "4g"

    def test_driver_memory_default(self):
        app = make_application(driver={})
        doc = build(app)
        assert doc.get("spark.driver.memory") == "1024m"
        assert doc.priority_of("spark.driver.memory") == Priority.BUILTIN
        assert doc.get("spark.driver.cores") == "1"

    def test_executor_memory_default(self):
        app = make_application(executor={"instances": 1})
        assert build(app).get("spark.executor.memory") == "1g"

    def test_driver_cores_from_conf(self):
        app = make_application(driver={}, sparkConf={"spark.driver.cores": "3"})
        doc = build(app)
        assert doc.get("spark.driver.cores") == "3"
        assert doc.priority_of("spark.driver.cores") == Priority.SPARK_CONF

    def test_driver_cores_conf_must_be_integer(self):
        app = make_application(driver={}, sparkConf={"spark.driver.cores": "lots"})
        with pytest.raises(ConfigurationError):
            build(app)

    def test_service_account_field_beats_conf(self):
        app = make_application(
            sparkConf={"spark.kubernetes.authenticate.driver.serviceAccountName": "other"}
        )
        assert build(app).get("spark.kubernetes.authenticate.driver.serviceAccountName") == "spark"

    def test_pass_through_sorted(self):
        app = make_application(sparkConf={"spark.z.setting": "1", "spark.a.setting": "2"})
        keys = keys_of(build(app))
        assert keys.index("spark.a.setting") < keys.index("spark.z.setting")

    def test_class_path_escaped(self):
        app = make_application(sparkConf={"spark.driver.extraClassPath": "/opt/a:/opt/b"})
        assert build(app).get("spark.driver.extraClassPath") == "/opt/a\\:/opt/b"

    def test_pod_name_conf_not_passed_through_twice(self):
        app = make_application(sparkConf={"spark.kubernetes.driver.pod.name": "custom"})
        doc = build(app)
        assert doc.get("spark.kubernetes.driver.pod.name") == "custom"
        assert keys_of(doc).count("spark.kubernetes.driver.pod.name") == 1


class TestMemoryOverhead:
    def test_jvm_default_factor(self, app):
        doc = build(app)
        assert doc.get("spark.kubernetes.memoryOverheadFactor") == "0.10"
        assert doc.priority_of("spark.kubernetes.memoryOverheadFactor") == Priority.BUILTIN

    def test_python_defaults(self):
        app = make_application(type="Python", mainClass=None, pythonVersion="3")
        doc = build(app)
        assert doc.get("spark.kubernetes.memoryOverheadFactor") == "0.40"
        assert doc.get("spark.kubernetes.pyspark.pythonVersion") == "3"
        assert doc.get("spark.kubernetes.resource.type") == "python"

    def test_explicit_factor(self):
        app = make_application(memoryOverheadFactor="0.25")
        assert build(app).get("spark.kubernetes.memoryOverheadFactor") == "0.25"

    def test_fixed_overhead_suppresses_factor(self):
        app = make_application(driver={"memory": "1g", "memoryOverhead": "512m"})
        doc = build(app)
        assert "spark.kubernetes.memoryOverheadFactor" not in doc
        assert doc.get("spark.driver.memoryOverhead") == "512m"

    def test_kubernetes_overhead_applies_to_both_roles(self):
        app = make_application(sparkConf={"spark.kubernetes.memoryOverhead": "256m"})
        doc = build(app)
        assert doc.get("spark.driver.memoryOverhead") == "256m"
        assert doc.get("spark.executor.memoryOverhead") == "256m"


class TestSections:
    """Tests for the remaining builder sections."""

    def test_executor_settings(self, app):
        doc = build(app)
        assert doc.get("spark.executor.instances") == "2"
        assert doc.get("spark.executor.cores") == "2"
        assert doc.get("spark.executor.memory") == "2g"

    def test_executor_delete_on_termination(self):
        app = make_application(executor={"instances": 1, "deleteOnTermination": False})
        assert build(app).get("spark.kubernetes.executor.deleteOnTermination") == "false"

    def test_dependencies_and_main_resource(self):
        app = make_application(
            deps={"jars": ["local:///opt/extra.jar"], "files": ["s3a://b/f.txt"]}
        )
        doc = build(app)
        assert doc.get("spark.jars") == (
            "local\\:///opt/extra.jar,local\\:///opt/spark/examples/jars/spark-examples.jar"
        )
        assert doc.get("spark.files") == "s3a://b/f.txt"
        assert doc.priority_of("spark.jars") == Priority.FORCED

    def test_arguments_are_trailing_raw_lines(self):
        app = make_application(arguments=["--rows", "100"])
        text = build(app).render()
        assert text.endswith("\n--rows\n100\n")

    def test_labels_merge_driver_wins(self):
        app = make_application(
            metadata={"name": "pi", "namespace": "spark-jobs", "labels": {"team": "data"}},
            driver={"labels": {"team": "ml", "tier": "gold"}},
        )
        doc = build(app)
        assert doc.get("spark.kubernetes.driver.label.team") == "ml"
        assert doc.get("spark.kubernetes.driver.label.tier") == "gold"

    def test_prometheus_annotation_single_line(self):
        annotation = "opencensus.k8s-integration.com/prometheus-targets"
        app = make_application(driver={"annotations": {annotation: '[{"port":"8090"}]\n'}})
        doc = build(app)
        assert doc.get(f"spark.kubernetes.driver.annotation.{annotation}") == (
            '[{"port"\\:"8090"}]'
        )

    def test_secret_key_refs(self):
        app = make_application(
            driver={"envSecretKeyRefs": {"DB_PASSWORD": {"name": "db", "key": "password"}}}
        )
        doc = build(app)
        assert doc.get("spark.kubernetes.driver.secretKeyRef.DB_PASSWORD") == "db:password"

    def test_typed_secret_adds_env(self):
        app = make_application(
            driver={
                "secrets": [
                    {"name": "gcp-sa", "path": "/mnt/gcp", "secretType": "GCPServiceAccount"}
                ]
            }
        )
        doc = build(app)
        assert doc.get("spark.kubernetes.driver.secrets.gcp-sa") == "/mnt/gcp"
        assert doc.get("spark.kubernetes.driverEnv.GOOGLE_APPLICATION_CREDENTIALS") == (
            "/mnt/gcp/key.json"
        )

    def test_env_vars(self):
        app = make_application(
            driver={"envVars": {"MODE": "batch"}, "env": [{"name": "LEVEL", "value": "3"}]},
            executor={"envVars": {"MODE": "worker"}},
        )
        doc = build(app)
        assert doc.get("spark.kubernetes.driverEnv.MODE") == "batch"
        assert doc.get("spark.kubernetes.driverEnv.LEVEL") == "3"
        assert doc.get("spark.executorEnv.MODE") == "worker"

    def test_hadoop_conf_not_escaped(self):
        app = make_application(hadoopConf={"fs.s3a.endpoint": "http://minio:9000"})
        doc = build(app)
        assert doc.get("spark.hadoop.fs.s3a.endpoint") == "http://minio:9000"
        assert doc.get("spark.hadoop.HADOOP_CONF_DIR") == "/opt/hadoop/conf"

    def test_dynamic_allocation(self):
        app = make_application(
            dynamicAllocation={"enabled": True, "minExecutors": 1, "maxExecutors": 5}
        )
        doc = build(app)
        assert doc.get("spark.dynamicAllocation.enabled") == "true"
        assert doc.get("spark.dynamicAllocation.shuffleTracking.enabled") == "true"
        assert doc.get("spark.dynamicAllocation.minExecutors") == "1"
        assert doc.get("spark.dynamicAllocation.maxExecutors") == "5"

    def test_dynamic_allocation_disabled(self):
        app = make_application(dynamicAllocation={"enabled": False, "maxExecutors": 5})
        assert "spark.dynamicAllocation.enabled" not in build(app)

    def test_node_selectors(self):
        app = make_application(
            nodeSelector={"pool": "spark"},
            driver={"nodeSelector": {"zone": "a"}},
        )
        doc = build(app)
        assert doc.get("spark.kubernetes.node.selector.pool") == "spark"
        assert doc.get("spark.kubernetes.driver.node.selector.zone") == "a"

    def test_monitoring(self):
        app = make_application(
            monitoring={
                "exposeDriverMetrics": True,
                "metricsPropertiesFile": "/etc/metrics/conf/metrics.properties",
            }
        )
        doc = build(app)
        assert doc.get("spark.metrics.namespace") == "spark-jobs.pi"
        assert doc.get("spark.metrics.conf") == "/etc/metrics/conf/metrics.properties"

    def test_image_escaped(self):
        app = make_application(image="registry.local:5000/spark:3.5.1")
        doc = build(app)
        assert doc.get("spark.kubernetes.container.image") == (
            "registry.local\\:5000/spark\\:3.5.1"
        )

    def test_render_is_deterministic(self):
        app = make_application(sparkConf={"b": "1", "a": "2"})
        assert build(app).render() == build(app).render()


class TestDefaultsFile:
    """Tests for spark-defaults.conf merging."""

    def test_defaults_fill_gaps_only(self, tmp_path, app):
        defaults = tmp_path / "spark-defaults.conf"
        defaults.write_text(
            "# cluster defaults\n"
            "spark.eventLog.enabled true\n"
            "spark.executor.memory=8g\n"
            "spark.app.id : spark-defaults\n"
        )
        doc = build(app, defaults_file=defaults)
        assert doc.get("spark.eventLog.enabled") == "true"
        assert doc.priority_of("spark.eventLog.enabled") == Priority.DEFAULTS_FILE
        assert doc.get("spark.executor.memory") == "2g"
        assert doc.get("spark.app.id") == APP_ID

    def test_missing_file_ignored(self, tmp_path, app):
        doc = build(app, defaults_file=tmp_path / "absent.conf")
        assert "spark.eventLog.enabled" not in doc

    def test_read_properties_file_formats(self, tmp_path):
        path = tmp_path / "p.conf"
        path.write_text(
            "# comment\n"
            "! also a comment\n"
            "\n"
            "spark.a=1\n"
            "spark.b : 2\n"
            "spark.c 3\n"
            "spark.d=long\\\n"
            "  value\n"
            "spark.flag\n"
        )
        assert read_properties_file(path) == [
            ("spark.a", "1"),
            ("spark.b", "2"),
            ("spark.c", "3"),
            ("spark.d", "longvalue"),
            ("spark.flag", ""),
        ]

    def test_read_properties_file_utf8(self, tmp_path):
        path = tmp_path / "p.conf"
        path.write_bytes("spark.app.name=Café données\n".encode("utf-8"))
        assert read_properties_file(path) == [("spark.app.name", "Café données")]


# =============================================================================
# Local dirs
# =============================================================================


class TestLocalDirRewrite:
    """Tests for spark-local-dir-* volume rewriting."""

    @pytest.fixture
    def local_dir_app(self):
        return make_application(
            volumes=[
                {
                    "name": "spark-local-dir-1",
                    "hostPath": {"path": "/tmp/spark", "type": "Directory"},
                },
                {"name": "data", "emptyDir": {}},
            ],
            driver={
                "volumeMounts": [
                    {"name": "spark-local-dir-1", "mountPath": "/tmp/spark-local"},
                    {"name": "data", "mountPath": "/data"},
                ]
            },
            executor={
                "volumeMounts": [
                    {"name": "spark-local-dir-1", "mountPath": "/tmp/spark-local", "readOnly": True}
                ]
            },
        )

    def test_volumes_and_mounts_filtered(self, local_dir_app):
        result = rewrite_local_dirs(local_dir_app)
        assert [v["name"] for v in result.volumes] == ["data"]
        assert [m["name"] for m in result.driver_mounts] == ["data"]
        assert result.executor_mounts == []

    def test_properties_emitted(self, local_dir_app):
        result = rewrite_local_dirs(local_dir_app)
        driver = "spark.kubernetes.driver.volumes.hostPath.spark-local-dir-1."
        executor = "spark.kubernetes.executor.volumes.hostPath.spark-local-dir-1."
        assert result.properties == [
            (f"{driver}mount.path", "/tmp/spark-local"),
            (f"{driver}options.path", "/tmp/spark"),
            (f"{driver}options.type", "Directory"),
            (f"{executor}mount.path", "/tmp/spark-local"),
            (f"{executor}mount.readOnly", "true"),
            (f"{executor}options.path", "/tmp/spark"),
            (f"{executor}options.type", "Directory"),
        ]

    def test_application_not_mutated(self, local_dir_app):
        rewrite_local_dirs(local_dir_app)
        assert len(local_dir_app.spec.volumes) == 2
        assert len(local_dir_app.spec.driver.volume_mounts) == 2

    def test_pvc_options(self):
        app = make_application(
            volumes=[
                {"name": "spark-local-dir-pvc", "persistentVolumeClaim": {"claimName": "scratch"}}
            ],
            driver={"volumeMounts": [{"name": "spark-local-dir-pvc", "mountPath": "/scratch"}]},
        )
        props = dict(rewrite_local_dirs(app).properties)
        prefix = "spark.kubernetes.driver.volumes.persistentVolumeClaim.spark-local-dir-pvc."
        assert props[prefix + "options.claimName"] == "scratch"

    def test_properties_reach_document(self, local_dir_app):
        doc = build(local_dir_app)
        key = "spark.kubernetes.driver.volumes.hostPath.spark-local-dir-1.mount.path"
        assert doc.get(key) == "/tmp/spark-local"


# =============================================================================
# Helpers and ConfigMap
# =============================================================================


class TestHelpers:
    def test_master_url_defaults(self):
        assert master_url({}) == "k8s://https://localhost:443"

    def test_master_url_ipv6(self):
        env = {"KUBERNETES_SERVICE_HOST": "fd00::1", "KUBERNETES_SERVICE_PORT": "443"}
        assert master_url(env) == "k8s://https://[fd00::1]:443"

    def test_secret_env_generic(self):
        app = make_application(driver={"secrets": [{"name": "s", "path": "/mnt/s"}]})
        assert secret_env(app.spec.driver.secrets[0]) is None

    def test_secret_env_hadoop_token(self):
        app = make_application(
            driver={
                "secrets": [
                    {"name": "t", "path": "/mnt/t", "secretType": "HadoopDelegationToken"}
                ]
            }
        )
        assert secret_env(app.spec.driver.secrets[0]) == (
            "HADOOP_TOKEN_FILE_LOCATION",
            "/mnt/t/hadoop.token",
        )


class TestConfigMap:
    """Tests for build_config_map."""

    def test_manifest(self, app, ctx):
        doc = build(app)
        cm = build_config_map(app, ctx, doc)
        assert cm["kind"] == "ConfigMap"
        assert cm["metadata"]["name"] == "pi-driver-conf-map"
        assert cm["metadata"]["namespace"] == "spark-jobs"
        assert cm["metadata"]["labels"] == {"spark-app-selector": APP_ID}
        assert cm["metadata"]["ownerReferences"][0]["kind"] == "SparkApplication"
        assert cm["metadata"]["ownerReferences"][0]["uid"] == app.metadata.uid
        assert cm["data"]["spark-env.sh"] == "export SPARK_LOCAL_IP=$(hostname -i)\n"
        assert cm["data"]["spark.kubernetes.namespace"] == "spark-jobs"
        assert cm["data"]["spark.properties"] == doc.render()

    def test_no_owner_reference_without_uid(self):
        app = make_application(metadata={"name": "pi", "namespace": "spark-jobs"})
        ctx = make_context(app)
        cm = build_config_map(app, ctx, build(app))
        assert "ownerReferences" not in cm["metadata"]
