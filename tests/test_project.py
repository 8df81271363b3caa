import os
from pathlib import Path

import pytest

from protoc_schema.loader import UnresolvedImportError
from protoc_schema.project import Project, UnknownProtoError
from protoc_schema.resolver import UnresolvedTypeError

TESTS_DIR = os.path.realpath(os.path.dirname(__file__))


def _project():
    return Project(TESTS_DIR).set_template_dir("templates")


class TestLoading:
    def test_protos_in_discovery_order(self):
        project = _project().add_proto("protos/kitchen-sink.proto")
        assert [p.name for p in project.get_protos()] == [
            "kitchen-sink.proto",
            "options.proto",
            "descriptor.proto",
            "otherOptions.proto",
            "common.proto",
            "person.proto",
        ]

    def test_get_single_proto(self):
        project = _project().add_proto("protos/person.proto")
        protos = project.get_protos("protos/person.proto")
        assert len(protos) == 1
        person = protos[0]
        assert person.package == "examples"
        assert len(person.imports) == 1
        assert person.imports[0].name == "common.proto"

    def test_adding_twice_loads_once(self):
        project = _project().add_proto("protos/person.proto").add_proto("protos/common.proto")
        assert len(project.get_protos()) == 2

    def test_incremental_loading(self):
        project = _project().add_proto("protos/vehicle.proto")
        project.add_proto("protos/loop.proto")
        assert [p.name for p in project.get_protos()] == ["vehicle.proto", "loop.proto"]
        assert project.find_type("loop.TweedleDee") is not None
        assert project.find_type("examples.vehicles.Vehicle") is not None

    def test_unknown_proto(self):
        project = _project().add_proto("protos/vehicle.proto")
        with pytest.raises(UnknownProtoError, match="Unknown proto file"):
            project.get_protos("protos/loop.proto")

    def test_missing_proto(self):
        with pytest.raises(UnresolvedImportError):
            _project().add_proto("protos/does-not-exist.proto")

    def test_failed_import_leaves_no_partial_files(self, tmp_path):
        (tmp_path / "a.proto").write_text(
            'package a;\nimport "missing.proto";\nmessage A { optional Gone g = 1; }\n'
        )
        (tmp_path / "ok.proto").write_text("package ok;\nmessage Ok {}\n")
        project = Project(str(tmp_path))

        with pytest.raises(UnresolvedImportError):
            project.add_proto("a.proto")
        assert project.get_protos() == []

        project.add_proto("ok.proto")
        assert [p.name for p in project.get_protos()] == ["ok.proto"]
        assert project.find_type("a.A") is None

    def test_failed_resolution_can_be_retried(self, tmp_path):
        broken = tmp_path / "b.proto"
        broken.write_text("package b;\nmessage B { optional Nope n = 1; }\n")
        project = Project(str(tmp_path))

        with pytest.raises(UnresolvedTypeError):
            project.add_proto("b.proto")
        assert "b.B" not in project.symbols

        broken.write_text("package b;\nmessage B { optional int32 n = 1; }\n")
        project.add_proto("b.proto")
        assert project.find_type("b.B").get_field("n").is_resolved

    def test_protoc_paths_must_be_a_list(self):
        with pytest.raises(TypeError):
            _project().set_protoc_paths("protos")

    def test_custom_protoc_paths(self):
        project = Project(TESTS_DIR).set_protoc_paths(["protos"])
        project.add_proto("vehicle.proto")
        assert project.get_proto("vehicle.proto").package == "examples.vehicles"


class TestResolution:
    def test_enum_template_object(self):
        project = _project().add_proto("protos/person.proto")
        phone_type = project.find_type("examples.Person.PhoneType")
        assert phone_type.to_template_object() == {
            "name": "PhoneType",
            "fullName": "examples.Person.PhoneType",
            "isEnum": True,
            "values": [
                {"name": "MOBILE", "titleName": "Mobile", "number": 0},
                {"name": "HOME", "titleName": "Home", "number": 1},
                {"name": "WORK", "titleName": "Work", "number": 2},
                {"name": "WORK_FAX", "titleName": "WorkFax", "number": 3},
            ],
        }

    def test_types_across_an_import_cycle(self):
        project = _project().add_proto("protos/person.proto")
        person = project.find_type("examples.Person")
        assert person.get_field("customFields").type_descriptor is project.find_type("examples.StringPair")
        assert person.get_field("favorite_color").type_descriptor.full_name == "examples.Color"
        assert person.get_field("preferred").type_descriptor is person.get_enum("PhoneType")
        phone = person.get_message("PhoneNumber")
        assert phone.get_field("type").type_descriptor is person.get_enum("PhoneType")

        directory = project.find_type("examples.Directory")
        assert directory.get_field("people").type_descriptor is person

    def test_inner_messages(self):
        project = _project().add_proto("protos/inner.proto")
        obj = project.get_proto("protos/inner.proto").to_template_object()
        fields = {f["name"]: f for f in obj["messages"][0]["fields"]}
        assert fields["filling"]["typeDescriptor"]["fullName"] == "burrito.Tortilla.Filling"
        assert fields["qualified_filling"]["typeDescriptor"]["fullName"] == "burrito.Tortilla.Filling"
        assert fields["guac"]["typeDescriptor"]["fullName"] == "burrito.Tortilla.Guac"
        assert fields["qualified_guac"]["typeDescriptor"]["fullName"] == "burrito.Tortilla.Guac"

    def test_services(self):
        project = _project().add_proto("protos/services.proto")
        obj = project.get_proto("protos/services.proto").to_template_object()
        service = obj["services"][0]
        assert service["fullName"] == "shoes.RunningShoe"

        lace, track = service["methods"]
        assert lace["camelName"] == "laceShoe"
        assert lace["upperUnderscoreName"] == "LACE_SHOE"
        assert lace["inputTypeDescriptor"]["fullName"] == "shoes.Shoe"
        output = lace["outputTypeDescriptor"]
        assert output["fullName"] == "shoes.FullShoe"
        assert [f["camelName"] for f in output["fields"]] == ["shoeId", "isLaced", "strideCount"]

        assert track["clientStreaming"] and track["serverStreaming"]
        assert track["options"] == {"deprecated": True}

    def test_loop(self):
        project = _project().add_proto("protos/loop.proto")
        obj = project.get_proto("protos/loop.proto").to_template_object()
        dee = obj["messages"][0]
        assert dee["name"] == "TweedleDee"
        dum = dee["fields"][0]["typeDescriptor"]
        assert dum["name"] == "TweedleDum"
        assert len(dum["fields"]) == 1
        assert dum["fields"][0]["typeDescriptor"]["isRecursive"]

    def test_kitchen_sink(self):
        project = _project().add_proto("protos/kitchen-sink.proto")
        sink = project.find_type("examples.sink.KitchenSink")
        assert sink.get_field("pairs").type_descriptor is project.find_type("examples.StringPair")
        assert sink.get_field("drawer").oneof == "payload"

        utensil = project.find_type("examples.sink.KitchenSink.Drawer.Utensil")
        assert utensil.get_field("parent").type_descriptor is sink.get_message("Drawer")

        proto = project.get_proto("protos/kitchen-sink.proto")
        assert proto.get_enum("Status").get_value("DONE").number == 16
        assert proto.options["(examples.options.custom_file)"]["tags"] == ["a", "b"]
        stir = proto.get_service("Kitchen").get_method("Stir")
        assert stir.input_type_descriptor is utensil
        assert stir.output_type_descriptor.full_name == "examples.Color"


class TestExtensions:
    def test_extensions_are_merged(self):
        project = _project().add_proto("protos/kitchen-sink.proto")
        project.get_protos()

        field_options = project.find_type("google.protobuf.FieldOptions")
        extensions = [f.name for f in field_options.fields if f.is_extension]
        assert extensions == ["js_type_hint", "sensitive"]

        message_options = project.find_type("google.protobuf.MessageOptions")
        other = message_options.get_field("other")
        assert other.is_extension
        assert other.type_descriptor is project.find_type("examples.options.OtherOption")

        chef = project.find_type("examples.sink.KitchenSink").get_field("chef")
        assert chef.is_extension
        assert chef.number == 100

    def test_unmatched_extend_is_left_on_its_file(self):
        project = _project().add_proto("protos/options.proto")
        options = project.get_proto("protos/options.proto")
        assert [e.target_name for e in options.extends] == ["Unknown"]

    def test_merge_runs_once(self):
        project = _project().add_proto("protos/kitchen-sink.proto")
        project.get_protos()
        project.get_protos()
        sink = project.find_type("examples.sink.KitchenSink")
        assert [f.name for f in sink.fields].count("chef") == 1


class TestMutation:
    def test_remove_and_add_field_shows_up_in_output(self):
        project = _project().add_proto("protos/common.proto")
        color = project.find_type("examples.Color")
        color.remove_field_by_name("green")
        color.add_field("string", "hex", 4)
        obj = color.to_template_object()
        assert [f["name"] for f in obj["fields"]] == ["red", "blue", "hex"]


class TestCompile:
    def test_compile_with_output_fn(self):
        calls = []

        def output_fn(descriptor, file_name, contents):
            calls.append((descriptor, file_name, contents))
            return file_name

        project = (
            _project()
            .set_out_dir("generated-stuff")
            .add_job("protos/vehicle.proto", "just_names.j2", ".xx.js")
            .set_output_fn(output_fn)
        )
        results = project.compile()

        assert len(calls) == 1
        descriptor, file_name, contents = calls[0]
        assert descriptor.name == "vehicle.proto"
        assert contents == "Proto=vehicle.proto,Msg=Vehicle,"
        assert file_name == os.path.join(TESTS_DIR, "generated-stuff", "protos", "vehicle.proto.xx.js")
        assert results == [file_name]

    def test_suffix_specific_out_dir_and_java_class_name(self):
        calls = []
        project = (
            _project()
            .set_out_dir("generated-stuff")
            .set_out_dir("java/generated-stuff", ".java")
            .add_job("protos/vehicle.proto", "just_names.j2", ".java")
            .set_output_fn(lambda d, name, contents: calls.append(name))
        )
        project.compile()
        assert calls == [os.path.join(TESTS_DIR, "java", "generated-stuff", "protos", "VehicleProtos.java")]

    def test_default_output_fn_writes_files(self, tmp_path):
        project = (
            _project()
            .set_out_dir(str(tmp_path))
            .add_job("protos/vehicle.proto", "just_names.j2")
        )
        (written,) = project.compile()
        assert written == str(tmp_path / "protos" / "vehicle.proto.js")
        assert Path(written).read_text() == "Proto=vehicle.proto,Msg=Vehicle,"

    def test_default_suffix(self):
        calls = []
        project = (
            _project()
            .set_out_dir("out")
            .set_default_suffix(".txt")
            .add_job("protos/loop.proto", "just_names.j2")
            .set_output_fn(lambda d, name, contents: calls.append(name))
        )
        project.compile()
        assert calls == [os.path.join(TESTS_DIR, "out", "protos", "loop.proto.txt")]

    def test_environment_options(self, tmp_path):
        (tmp_path / "name.j2").write_text("{{ name }}\n")
        calls = []
        project = (
            Project(TESTS_DIR)
            .set_template_dir(str(tmp_path))
            .add_job("protos/vehicle.proto", "name.j2", ".txt")
            .set_output_fn(lambda d, name, contents: calls.append(contents))
        )
        project.compile()
        project.set_environment_options(keep_trailing_newline=False)
        project.compile()
        assert calls == ["vehicle.proto\n", "vehicle.proto"]
