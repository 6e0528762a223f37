"""Standing classification.

Thresholds below are the policy under test, taken from StandingPolicy
defaults or overridden per test; they are institution configuration, not
fixed rules.
"""
from django.test import SimpleTestCase, override_settings

from standing.classification import (
    PASS,
    PROBATION,
    TERMINATION,
    WITHDRAWAL,
    PriorStanding,
    StandingPolicy,
    classify,
    degree_class,
)
from standing.conf import get_config

POLICY = StandingPolicy()
CLEAN = PriorStanding()
ON_PROBATION = PriorStanding(probation_status="probation")
TERMINATED = PriorStanding(termination_status="terminated")


class DegreeClassTests(SimpleTestCase):
    def test_bands(self):
        cases = [
            (5.0, "first_class"),
            (4.5, "first_class"),
            (4.49, "second_class_upper"),
            (3.5, "second_class_upper"),
            (2.5, "second_class_lower"),
            (1.5, "third_class"),
            (1.49, "fail"),
            (None, "fail"),
        ]
        for cgpa, expected in cases:
            with self.subTest(cgpa=cgpa):
                self.assertEqual(degree_class(cgpa), expected)


class ClassifyTests(SimpleTestCase):
    def test_good_student_passes(self):
        decision = classify(3.2, 0, CLEAN, POLICY)
        self.assertEqual(decision.category, PASS)
        self.assertEqual(decision.remark, "good")
        self.assertEqual(decision.degree_class, "second_class_lower")

    def test_excellent_remark(self):
        self.assertEqual(classify(4.7, 0, CLEAN, POLICY).remark, "excellent")

    def test_low_cgpa_is_probation(self):
        decision = classify(1.2, 0, CLEAN, POLICY)
        self.assertEqual(decision.category, PROBATION)
        self.assertEqual(decision.probation_status, "probation")

    def test_probation_threshold_is_exclusive(self):
        self.assertEqual(classify(1.5, 0, CLEAN, POLICY).category, PASS)

    def test_many_carryovers_is_probation(self):
        self.assertEqual(classify(3.0, 5, CLEAN, POLICY).category, PROBATION)

    def test_second_bad_semester_on_probation_is_withdrawal(self):
        decision = classify(0.8, 1, ON_PROBATION, POLICY)
        self.assertEqual(decision.category, WITHDRAWAL)
        self.assertEqual(decision.termination_status, "withdrawn")

    def test_first_bad_semester_is_only_probation(self):
        self.assertEqual(classify(0.8, 1, CLEAN, POLICY).category, PROBATION)

    def test_carryover_limit_terminates(self):
        decision = classify(3.0, 9, CLEAN, POLICY)
        self.assertEqual(decision.category, TERMINATION)
        self.assertEqual(decision.termination_status, "terminated")

    def test_termination_is_sticky(self):
        self.assertEqual(classify(4.0, 0, TERMINATED, POLICY).category, TERMINATION)
        relaxed = StandingPolicy(sticky_termination=False)
        self.assertEqual(classify(4.0, 0, TERMINATED, relaxed).category, PASS)

    def test_recovering_from_probation_lifts_it(self):
        decision = classify(2.1, 0, ON_PROBATION, POLICY)
        self.assertEqual(decision.category, PASS)
        self.assertEqual(decision.probation_status, "probation_lifted")

    def test_missing_cgpa_is_judged_on_carryovers(self):
        self.assertEqual(classify(None, 0, CLEAN, POLICY).category, PASS)
        self.assertEqual(classify(None, 6, CLEAN, POLICY).category, PROBATION)

    def test_action_follows_the_category(self):
        cases = [
            (classify(3.2, 0, CLEAN, POLICY), "none"),
            (classify(2.1, 0, ON_PROBATION, POLICY), "lift_probation"),
            (classify(1.2, 0, CLEAN, POLICY), "probation"),
            (classify(0.8, 1, ON_PROBATION, POLICY), "withdraw"),
            (classify(3.0, 9, CLEAN, POLICY), "terminate"),
        ]
        for decision, action in cases:
            with self.subTest(category=decision.category):
                self.assertEqual(decision.action, action)

    def test_exactly_one_category(self):
        for cgpa in (None, 0.0, 0.99, 1.0, 1.49, 1.5, 2.4, 3.6, 5.0):
            for carryovers in range(0, 12):
                for prior in (CLEAN, ON_PROBATION, TERMINATED):
                    decision = classify(cgpa, carryovers, prior, POLICY)
                    self.assertIn(decision.category, (PASS, PROBATION, WITHDRAWAL, TERMINATION))

    def test_custom_policy_moves_thresholds(self):
        strict = StandingPolicy(probation_cgpa=2.0, probation_carryover_count=2)
        self.assertEqual(classify(1.8, 0, CLEAN, strict).category, PROBATION)
        self.assertEqual(classify(3.0, 2, CLEAN, strict).category, PROBATION)
        self.assertEqual(classify(1.8, 0, CLEAN, POLICY).category, PASS)


class PolicyConfigTests(SimpleTestCase):
    @override_settings(STANDING_COMPUTATION={"POLICY": {"probation_cgpa": 2.0}, "BATCH_SIZE": 5000})
    def test_policy_and_batch_size_come_from_settings(self):
        config = get_config()
        self.assertEqual(config.policy.probation_cgpa, 2.0)
        self.assertEqual(config.policy.withdrawal_cgpa, 1.0)
        self.assertEqual(config.batch_size, 1000)
        self.assertEqual(config.worker_concurrency, 3)

    @override_settings(STANDING_COMPUTATION={"POLICY": {"probation_gpa": 2.0}})
    def test_unknown_policy_key_is_rejected(self):
        with self.assertRaises(ValueError):
            get_config()
