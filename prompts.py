"""Prompt templates for cover-letter review and the mock interview.

Pure functions: structured data in, one prompt string out.
"""

from token_budget import INPUT_LIMITS, truncate_answer, truncate_cover_letter

INTERVIEW_TYPE_LABELS = {
    'BASIC': 'behavioural / general',
    'TECHNICAL': 'technical',
}


def _previous_questions_block(previous_questions) -> str:
    if not previous_questions:
        return ''
    lines = '\n'.join(f'{i}. {q}' for i, q in enumerate(previous_questions, 1))
    return f'Previous questions:\n{lines}\n\n'


# ---------------------------------------------------------------------------
# Cover letter
# ---------------------------------------------------------------------------

def build_cover_letter_feedback_prompt(profile: dict, content: str) -> str:
    """Rubric review of a cover letter, personalised with the applicant profile.

    ``profile`` needs job_category, experience, age and gender.
    """
    essay = truncate_cover_letter(content, 'cover_letter_feedback')
    return f"""You are a hiring expert in the field of {profile['job_category']}.

Carefully analyse the following applicant's cover letter and give professional, specific feedback.

Applicant profile:
- Job category: {profile['job_category']}
- Experience: {profile['experience']}
- Age: {profile['age']}
- Gender: {profile['gender']}

Cover letter:
{essay}

Give feedback on each of the following items:

1. **Structure and logic** (out of 5)
   - Flow and organisation of the text
   - Logical progression

2. **Fit for the role** (out of 5)
   - Understanding of the role
   - Relevant experience and skills presented

3. **Specificity and sincerity** (out of 5)
   - Concrete examples
   - Genuine, personal expression

4. **Writing and expression** (out of 5)
   - Spelling and grammar
   - Readability

For each item give:
- A score (X/5)
- Two things done well
- Two things to improve
- A concrete rewrite suggestion

Finish with an overall opinion and the total score.

Write in a kind but professional tone, with feedback the applicant can act on."""


def build_quick_feedback_prompt(content: str) -> str:
    """Profile-free review of an arbitrary essay, scored out of 100."""
    essay = truncate_cover_letter(content, 'quick_feedback')
    return f"""You are an experienced HR professional and career consultant who reviews cover letters.

Analyse the following cover letter and give specific, practical feedback.

Cover letter:
{essay}

Include the following sections:

1. **Overall impression** (under 100 characters)
2. **Strengths** (with concrete examples)
3. **Areas to improve** (with concrete fixes)
4. **Recommended edits** (changes the writer can apply directly)
5. **Score** (out of 100)

Keep the tone constructive and encouraging, and back every point with an example."""


# ---------------------------------------------------------------------------
# Interview questions
# ---------------------------------------------------------------------------

def build_basic_question_prompt(profile: dict, content: str,
                                previous_questions=()) -> str:
    essay = truncate_cover_letter(content, 'interview_question')
    return f"""You are a veteran interviewer in the field of {profile['job_category']}.

Applicant profile:
- Job category: {profile['job_category']}
- Experience: {profile['experience']}

Cover letter:
{essay}

{_previous_questions_block(previous_questions)}Based on the cover letter, write **exactly one behavioural event interview (BEI) question** that assesses:
- Character and values
- Collaboration and communication
- Problem solving
- Adapting to an organisation

Guidelines:
1. Ground the question in a specific experience mentioned in the cover letter
2. Phrase it as "Tell me about a time when ..."
3. It must be answerable with the STAR method
4. It should reveal how the applicant actually behaves and thinks
5. Take a new angle that does not repeat any previous question

Output only the question text, with no explanation."""


def build_technical_question_prompt(profile: dict, content: str,
                                    previous_questions=()) -> str:
    essay = truncate_cover_letter(content, 'interview_question')
    return f"""You are a senior technical interviewer in the field of {profile['job_category']}.

Applicant profile:
- Job category: {profile['job_category']}
- Experience: {profile['experience']}

Cover letter:
{essay}

{_previous_questions_block(previous_questions)}Based on the projects and technology stack in the cover letter, write **exactly one in-depth technical question** that assesses:
- Deep understanding of the technology
- Reasons for technology choices and their trade-offs
- Technical decisions made while solving problems
- Hands-on implementation experience

Guidelines:
1. Ground the question in a specific technology or project from the cover letter
2. Ask in depth, e.g. "Why did you choose that technology?" or "What went wrong and how did you fix it?"
3. Probe real understanding and experience, not memorised facts
4. Match the difficulty to the applicant's experience level
5. Cover a new technical area that does not repeat any previous question

Output only the question text, with no explanation."""


_QUESTION_BUILDERS = {
    'BASIC': build_basic_question_prompt,
    'TECHNICAL': build_technical_question_prompt,
}


def build_question_prompt(interview_type: str, profile: dict, content: str,
                          previous_questions=()) -> str:
    """Pick the question template for the session type."""
    return _QUESTION_BUILDERS[interview_type](profile, content, previous_questions)


# ---------------------------------------------------------------------------
# Answer grading and closing summary
# ---------------------------------------------------------------------------

def build_answer_feedback_prompt(question: str, answer: str,
                                 interview_type: str) -> str:
    type_label = INTERVIEW_TYPE_LABELS[interview_type]
    if interview_type == 'BASIC':
        criterion = 'Evaluate against the STAR method (Situation, Task, Action, Result).'
    else:
        criterion = ('Evaluate the technical depth and accuracy, and how concrete '
                     'the hands-on experience is.')

    return f"""You are a professional interviewer. Evaluate the following {type_label} interview question and answer.

Question: {question}

Answer: {truncate_answer(answer, 'answer_feedback')}

Give feedback on:

1. **What went well** (1-2 points)
   - Exactly which parts were good

2. **What to improve** (1-2 points)
   - Exactly how to improve them

3. **Recommended answer structure**
   - A better way to answer this question

{criterion}

Write in a kind but professional tone."""


def build_comprehensive_feedback_prompt(interview_type: str, qa_pairs) -> str:
    """Closing summary over the answered turns.

    ``qa_pairs`` is an ordered iterable of dicts with question, answer and
    feedback keys.
    """
    type_label = INTERVIEW_TYPE_LABELS[interview_type]
    blocks = []
    for i, qa in enumerate(qa_pairs, 1):
        blocks.append(
            f"[Question {i}]\n{qa['question']}\n\n"
            f"[Answer {i}]\n{truncate_answer(qa['answer'], 'comprehensive_feedback')}\n\n"
            f"[Feedback {i}]\n{qa['feedback']}\n"
        )
    transcript = '\n---\n'.join(blocks)

    return f"""You are a professional interviewer. Below is the full transcript of a {type_label} interview.

{transcript}

Write a comprehensive review of the whole interview that includes:

1. **Overall evaluation** (out of 5)
   - Overall answer quality
   - Consistency of attitude

2. **Strengths** (3 points)
   - Skills or attitudes the applicant demonstrated well

3. **Areas to improve** (3 points)
   - Include concrete ways to improve

4. **Preparation advice**
   - Practical tips for the next interview

5. **Final opinion**
   - An overall assessment from a hiring perspective

Write in a professional, constructive tone."""


# ---------------------------------------------------------------------------
# Conversational interview (stateless)
# ---------------------------------------------------------------------------

CHAT_ROLE_LABELS = {
    'user': 'Candidate',
    'assistant': 'Interviewer',
}


def build_chat_interview_prompt(content: str, conversation_history=(),
                                is_first_question: bool = False) -> str:
    """One step of a free-form interview driven by the client's transcript.

    ``conversation_history`` is an ordered iterable of {'role', 'content'}
    dicts; role 'user' is the candidate, anything else the interviewer.
    """
    essay = truncate_cover_letter(content, 'chat_interview')
    intro = ('You are an experienced interviewer. Based on the cover letter, ask '
             'interview questions of a suitable difficulty, give brief feedback on '
             "the candidate's answers, then continue with the next question. Keep "
             'questions concrete and useful for real work.')

    if is_first_question:
        return f"""{intro}

Create the first interview question based on the following cover letter.

Cover letter:
{essay}

Write it in this format:
- Question (concrete and practical)
- Question intent (what you want to find out with it)

Tie the question to the core of the cover letter so the candidate can describe their experience and skills in detail."""

    history = '\n'.join(
        f"{CHAT_ROLE_LABELS.get(msg.get('role'), 'Interviewer')}: {msg.get('content', '')}"
        for msg in conversation_history
    )
    # Long transcripts keep their most recent part
    limit = INPUT_LIMITS['conversation']['chat_interview']
    if len(history) > limit:
        history = history[-limit:]
    return f"""{intro}

Below is the interview so far.

Cover letter:
{essay}

Conversation so far:
{history}

Give brief feedback (1-2 sentences) on the candidate's last answer, then ask the next question.

Reply format:
Feedback: [brief feedback on the candidate's answer]
Next question: [the next question, considering the cover letter and the conversation]"""
