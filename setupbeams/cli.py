import argparse
import logging
from pathlib import Path

from setupbeams.images.ct import CTVolume
from setupbeams.plans.plan import Patient, Plan
from setupbeams.script import PreconditionError, ScriptContext, execute

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="setupbeams",
        description="Add 4 kV setup beams and 1 CBCT setup beam to an RT Plan",
    )
    parser.add_argument("plan", type=Path, help="The RTPLAN file to add the setup beams to")
    parser.add_argument(
        "--history",
        type=Path,
        help="Directory with the other RTPLAN files of the patient, used to number the beams",
    )
    parser.add_argument("--ct", type=Path, help="Directory with the planning CT; needed for DRRs")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Where to write the modified plan. Defaults to <plan>_setup.dcm",
    )
    parser.add_argument(
        "--drr-dir",
        type=Path,
        help="Where to write the DRRs. Defaults to the directory of the output plan",
    )
    parser.add_argument(
        "--planning-system-version",
        help="Version of the planning system; defaults to the version recorded in the plan",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        format=LOG_FORMAT, level=logging.DEBUG if args.verbose else logging.INFO
    )

    image = CTVolume.from_directory(args.ct) if args.ct else None
    plan = Plan.from_rt_plan_file(args.plan, image=image)
    patient = Patient.from_plans([plan])
    if args.history:
        for other in Patient.load_plans(args.history, patient_id=patient.patient_id):
            if other.uid != plan.uid:
                patient.add_plan(other)

    context = ScriptContext(
        patient=patient, plan=plan, version=args.planning_system_version
    )
    try:
        message = execute(context)
    except PreconditionError as e:
        logger.error(str(e))
        return 1

    output = args.output or args.plan.with_name(f"{args.plan.stem}_setup.dcm")
    plan.to_file(output)
    logger.info("Wrote %s", output)

    drr_dir = args.drr_dir or output.parent
    drr_dir.mkdir(parents=True, exist_ok=True)
    for drr in plan.drrs.values():
        path = drr_dir / f"RI.{plan.plan_id}.{drr.RTImageLabel}.dcm"
        drr.save_as(path, enforce_file_format=True)
        logger.info("Wrote %s", path)

    print(message)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
